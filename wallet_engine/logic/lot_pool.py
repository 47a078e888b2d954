# wallet_engine/logic/lot_pool.py

import logging
import threading
import uuid
from contextlib import contextmanager
from decimal import Decimal
from typing import Callable, Iterable, Iterator, Optional

from wallet_engine.core.enums.strategy import Strategy
from wallet_engine.core.exceptions import (
    CommittedLotConflict, LedgerValidationError, LotNotFound, OverdrawnLot
)
from wallet_engine.core.models.lot import Lot
from wallet_engine.logic.cost_objects import Contribution, SaleResult
from wallet_engine.logic.numeric import (
    SHARE_QUANTUM, clamp_non_negative, lot_match_key, percent_of, round_currency,
    round_price, round_shares, round_target_price, to_decimal
)
from wallet_engine.logic.target_prices import take_profit_target

logger = logging.getLogger(__name__)

LotKey = tuple[str, Strategy, Decimal]


class StockLockRegistry:
    """
    Hands out one re-entrant lock per stock id. Lot mutations for a stock are
    serialized by holding its lock across the whole read-modify-write sequence.
    """
    def __init__(self):
        self._locks: dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, stock_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(stock_id)
            if lock is None:
                lock = self._locks[stock_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, stock_id: str) -> Iterator[None]:
        with self.lock_for(stock_id):
            yield


class PoolChanges:
    """Lots created, updated and deleted since the pool was loaded or last marked persisted."""
    def __init__(self, created: list[Lot], updated: list[Lot], deleted: list[Lot]):
        self.created = created
        self.updated = updated
        self.deleted = deleted

    @property
    def is_empty(self) -> bool:
        return not (self.created or self.updated or self.deleted)


class LotPool:
    """
    In-memory set of cost-basis lots, indexed by (stock_id, strategy, quantized buy price).

    Lots are immutable pydantic models from the caller's point of view: every
    mutation builds an updated copy and swaps it in, so a reader sees either the
    old or the new lot, never a half-applied one.
    """

    def __init__(
        self,
        lots: Iterable[Lot] = (),
        id_factory: Optional[Callable[[], str]] = None
    ):
        self._lots: dict[str, Lot] = {}
        self._index: dict[LotKey, str] = {}
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        self._created: set[str] = set()
        self._updated: set[str] = set()
        self._deleted: dict[str, Lot] = {}
        for lot in lots:
            self._put(lot)

    # --- Lookup ---

    @staticmethod
    def key_for(stock_id: str, strategy: Strategy, buy_price) -> LotKey:
        return (stock_id, Strategy(strategy), lot_match_key(buy_price))

    def get(self, lot_id: str) -> Lot:
        lot = self._lots.get(lot_id)
        if lot is None:
            raise LotNotFound(lot_id)
        return lot

    def find(self, stock_id: str, strategy: Strategy, buy_price) -> Optional[Lot]:
        lot_id = self._index.get(self.key_for(stock_id, strategy, buy_price))
        return self._lots.get(lot_id) if lot_id else None

    def lots_for(
        self,
        stock_id: str,
        strategy: Optional[Strategy] = None,
        open_only: bool = False
    ) -> list[Lot]:
        return [
            lot for lot in self._lots.values()
            if lot.stock_id == stock_id
            and (strategy is None or lot.strategy == strategy)
            and (not open_only or lot.is_open)
        ]

    def all_lots(self) -> list[Lot]:
        return list(self._lots.values())

    # --- Change tracking ---

    def pending_changes(self) -> PoolChanges:
        return PoolChanges(
            created=[self._lots[i] for i in self._created],
            updated=[self._lots[i] for i in self._updated],
            deleted=list(self._deleted.values()),
        )

    def mark_persisted(self):
        self._created.clear()
        self._updated.clear()
        self._deleted.clear()

    # --- Mutations ---

    def contribute(
        self,
        stock_id: str,
        strategy: Strategy,
        buy_price,
        delta_shares,
        delta_investment,
        tp_percent=None,
        commission_percent=None
    ) -> Optional[Lot]:
        """
        Adds a Buy's shares and investment to the lot at (stock, strategy, price),
        creating the lot when none exists. Negative deltas are only accepted on a
        lot with no sales; a lot emptied this way is kept until removed explicitly.
        """
        price = to_decimal(buy_price)
        if price is None or price <= 0:
            raise LedgerValidationError("must be positive", field="buy_price")
        d_shares = round_shares(delta_shares)
        d_investment = round_currency(delta_investment)
        is_reduction = d_shares < 0 or d_investment < 0

        lot = self.find(stock_id, strategy, price)
        if lot is None:
            if is_reduction:
                raise LedgerValidationError(
                    f"no {Strategy(strategy).value} lot at {price} to remove shares from", field="buy_price"
                )
            if d_shares == 0:
                return None
            lot = Lot(
                lot_id=self._new_id(),
                stock_id=stock_id,
                strategy=strategy,
                buy_price=round_price(price),
                total_shares_qty=d_shares,
                total_investment=d_investment,
                remaining_shares=d_shares,
                tp_value=take_profit_target(price, tp_percent, commission_percent),
                tp_percent=to_decimal(tp_percent),
            )
            self._commit(lot, created=True)
            logger.debug(f"LotPool: created lot {lot.lot_id} ({lot.strategy.value} @ {lot.buy_price}), shares {d_shares}.")
            return lot

        if is_reduction and lot.is_committed:
            raise CommittedLotConflict(lot.lot_id, "shares or investment cannot be removed")

        total = round_shares(lot.total_shares_qty + d_shares)
        investment = round_currency(lot.total_investment + d_investment)
        remaining = round_shares(total - lot.shares_sold)
        if total < 0 or investment < 0 or remaining < 0:
            raise LedgerValidationError(
                f"contribution would leave lot {lot.lot_id} negative "
                f"(shares {total}, investment {investment}, remaining {remaining})"
            )

        update = {
            "total_shares_qty": total,
            "total_investment": investment,
            "remaining_shares": remaining,
            "version": lot.version + 1,
        }
        if tp_percent is not None:
            update["tp_value"] = take_profit_target(lot.buy_price, tp_percent, commission_percent)
            update["tp_percent"] = to_decimal(tp_percent)
        updated = lot.model_copy(update=update)
        self._commit(updated)
        logger.debug(f"LotPool: lot {lot.lot_id} shares {lot.total_shares_qty} -> {total}, investment {lot.total_investment} -> {investment}.")
        return updated

    def apply_sale(self, lot_id: str, quantity, price, commission_percent=None) -> SaleResult:
        lot = self.get(lot_id)
        q, p = self._sale_inputs(quantity, price)
        if q > lot.remaining_shares:
            raise OverdrawnLot(lot_id, q, lot.remaining_shares)

        sale = SaleResult.compute(lot.buy_price, q, p, commission_percent)
        shares_sold = round_shares(lot.shares_sold + q)
        realized = round_currency(lot.realized_pl + sale.profit)
        updated = lot.model_copy(update={
            "shares_sold": shares_sold,
            "remaining_shares": round_shares(lot.total_shares_qty - shares_sold),
            "realized_pl": realized,
            "realized_pl_percent": percent_of(realized, lot.buy_price * shares_sold),
            "sell_txn_count": lot.sell_txn_count + 1,
            "version": lot.version + 1,
        })
        self._commit(updated)
        logger.debug(f"LotPool: sold {q} from lot {lot_id} at {p}, profit {sale.profit}.")
        return sale

    def reverse_sale(self, lot_id: str, quantity, price, commission_percent=None, profit=None) -> Lot:
        """
        Undoes apply_sale for the same inputs. `profit` overrides the recomputed
        profit, for sales whose stored profit is authoritative.
        """
        lot = self.get(lot_id)
        q, p = self._sale_inputs(quantity, price)
        # One share quantum of slack absorbs rounding of split-adjusted quantities.
        if q > lot.shares_sold + SHARE_QUANTUM or lot.sell_txn_count == 0:
            raise LedgerValidationError(
                f"cannot reverse {q} shares from lot {lot_id} which only sold {lot.shares_sold}", field="quantity"
            )
        sale_profit = (
            round_currency(to_decimal(profit)) if profit is not None
            else SaleResult.compute(lot.buy_price, q, p, commission_percent).profit
        )

        shares_sold = round_shares(clamp_non_negative(lot.shares_sold - q))
        realized = round_currency(lot.realized_pl - sale_profit)
        updated = lot.model_copy(update={
            "shares_sold": shares_sold,
            "remaining_shares": round_shares(lot.total_shares_qty - shares_sold),
            "realized_pl": realized,
            "realized_pl_percent": percent_of(realized, lot.buy_price * shares_sold),
            "sell_txn_count": lot.sell_txn_count - 1,
            "version": lot.version + 1,
        })
        self._commit(updated)
        logger.debug(f"LotPool: reversed sale of {q} from lot {lot_id}, profit {sale_profit}.")
        return updated

    def apply_stock_split(self, stock_id: str, multiplier, split_event_id: str) -> tuple[list[Lot], list[str]]:
        """
        Permanently adjusts every lot of the stock for a split. Capital amounts
        are unchanged. Lots that already carry the split's id are skipped.

        Returns (adjusted lots, ids of skipped lots).
        """
        m = to_decimal(multiplier)
        if m is None or m <= 0:
            raise LedgerValidationError("must be greater than 0", field="split_multiplier")

        adjusted: list[Lot] = []
        skipped: list[str] = []
        with self._atomic():
            for lot in self.lots_for(stock_id):
                if split_event_id in lot.applied_split_ids:
                    skipped.append(lot.lot_id)
                    continue
                total = round_shares(lot.total_shares_qty * m)
                shares_sold = round_shares(lot.shares_sold * m)
                buy_price = round_price(lot.buy_price / m)
                updated = lot.model_copy(update={
                    "buy_price": buy_price,
                    "total_shares_qty": total,
                    "shares_sold": shares_sold,
                    "remaining_shares": round_shares(total - shares_sold),
                    "realized_pl_percent": percent_of(lot.realized_pl, buy_price * shares_sold),
                    "tp_value": round_target_price(lot.tp_value / m) if lot.tp_value is not None else None,
                    "applied_split_ids": lot.applied_split_ids + [split_event_id],
                    "version": lot.version + 1,
                })
                self._commit(updated)
                adjusted.append(updated)

        if skipped:
            logger.warning(f"LotPool: split {split_event_id} already applied to {len(skipped)} lot(s) of {stock_id}; skipped.")
        logger.info(f"LotPool: applied {m}:1 split {split_event_id} to {len(adjusted)} lot(s) of {stock_id}.")
        return adjusted, skipped

    def relocate_buy(
        self,
        stock_id: str,
        old: list[Contribution],
        new: list[Contribution],
        commission_percent=None
    ) -> list[Lot]:
        """
        Moves a Buy's contributions after its price, strategy or investment was edited.

        Old and new contributions are netted per lot key. Any key whose net change
        removes shares or investment must hold a lot without sales, otherwise the
        whole relocation is refused and nothing changes.
        """
        net: dict[LotKey, list] = {}
        for contribution in [c.negated() for c in old] + list(new):
            key = self.key_for(stock_id, contribution.strategy, contribution.buy_price)
            entry = net.setdefault(key, [contribution.strategy, contribution.buy_price, Decimal(0), Decimal(0), None])
            entry[2] += contribution.shares
            entry[3] += contribution.investment
            if contribution.shares >= 0 and contribution.tp_percent is not None:
                entry[4] = contribution.tp_percent

        for strategy, buy_price, d_shares, d_investment, _ in net.values():
            if d_shares < 0 or d_investment < 0:
                source = self.find(stock_id, strategy, buy_price)
                if source is None:
                    raise LedgerValidationError(
                        f"no {strategy.value} lot at {buy_price} to move the Buy from", field="buy_price"
                    )
                if source.is_committed:
                    raise CommittedLotConflict(source.lot_id, "Buy price, strategy or investment changed")

        touched: list[Lot] = []
        ordered = sorted(net.values(), key=lambda e: (e[2] >= 0, e[3] >= 0))
        with self._atomic():
            for strategy, buy_price, d_shares, d_investment, tp_percent in ordered:
                if d_shares == 0 and d_investment == 0:
                    continue
                lot = self.contribute(
                    stock_id, strategy, buy_price, d_shares, d_investment,
                    tp_percent=tp_percent, commission_percent=commission_percent
                )
                if lot is not None:
                    touched.append(lot)
        return touched

    def remove_lot(self, lot_id: str) -> Lot:
        """Deletes an empty lot. Never called implicitly."""
        lot = self.get(lot_id)
        if lot.remaining_shares != 0:
            raise LedgerValidationError(
                f"lot {lot_id} still holds {lot.remaining_shares} shares and cannot be deleted"
            )
        self._unindex(lot)
        del self._lots[lot_id]
        if lot_id in self._created:
            self._created.discard(lot_id)
        else:
            self._updated.discard(lot_id)
            self._deleted[lot_id] = lot
        logger.info(f"LotPool: removed empty lot {lot_id}.")
        return lot

    # --- Internals ---

    @staticmethod
    def _sale_inputs(quantity, price) -> tuple[Decimal, Decimal]:
        q = round_shares(to_decimal(quantity)) if quantity is not None else None
        p = to_decimal(price)
        if q is None or q <= 0:
            raise LedgerValidationError("must be positive", field="quantity")
        if p is None or p <= 0:
            raise LedgerValidationError("must be positive", field="price")
        return q, p

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        """Restores the pool if anything inside the block raises."""
        snapshot = (
            dict(self._lots), dict(self._index),
            set(self._created), set(self._updated), dict(self._deleted)
        )
        try:
            yield
        except Exception:
            self._lots, self._index, self._created, self._updated, self._deleted = snapshot
            raise

    def _commit(self, lot: Lot, created: bool = False):
        expected = round_shares(lot.total_shares_qty - lot.shares_sold)
        if lot.remaining_shares != expected or lot.remaining_shares < 0:
            raise LedgerValidationError(
                f"lot {lot.lot_id} would break remaining = total - sold "
                f"({lot.remaining_shares} != {expected})"
            )
        previous = self._lots.get(lot.lot_id)
        if previous is not None:
            self._unindex(previous)
        self._put(lot)
        if created:
            self._created.add(lot.lot_id)
        elif lot.lot_id not in self._created:
            self._updated.add(lot.lot_id)

    def _put(self, lot: Lot):
        self._lots[lot.lot_id] = lot
        key = self.key_for(lot.stock_id, lot.strategy, lot.buy_price)
        holder = self._index.setdefault(key, lot.lot_id)
        if holder != lot.lot_id:
            logger.warning(f"LotPool: lot {lot.lot_id} shares key {key} with lot {holder}; lookups resolve to {holder}.")

    def _unindex(self, lot: Lot):
        key = self.key_for(lot.stock_id, lot.strategy, lot.buy_price)
        if self._index.get(key) == lot.lot_id:
            del self._index[key]
