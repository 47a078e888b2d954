# wallet_engine/services/wallet_service.py

import logging
from contextlib import contextmanager
from datetime import date, datetime, timezone
from functools import partial
from typing import Any, Callable, Iterator, Optional

from wallet_engine.core.config.settings import settings
from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.enums.warning_code import WarningCode
from wallet_engine.core.exceptions import (
    CommittedLotConflict, EventNotFound, LedgerValidationError, StockNotFound,
    StoreWriteError, UpstreamUnavailable
)
from wallet_engine.core.models.diagnostics import EngineWarning, OperationResult
from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.lot import Lot
from wallet_engine.core.models.price import PriceQuote
from wallet_engine.core.models.stock import Stock
from wallet_engine.core.models.store import StoreResult
from wallet_engine.core.models.views import PortfolioSummary, StockSummary
from wallet_engine.logic.cash_flow import replay_cash_flow, with_cash_flow
from wallet_engine.logic.error_reporter import ErrorReporter
from wallet_engine.logic.event_calculator import EventCalculator, buy_contributions, derive_buy_fields
from wallet_engine.logic.lot_pool import LotPool, StockLockRegistry
from wallet_engine.logic.numeric import ZERO
from wallet_engine.logic.split_adjuster import SplitAdjuster
from wallet_engine.services.repository import LedgerRepository, PriceFeed
from wallet_engine.services.summary_service import SummaryBuilder

logger = logging.getLogger(__name__)

WALLET_NOT_UPDATED_MESSAGE = (
    "Transaction updated, but Buy Price/Type changed; "
    "associated wallet(s) were NOT automatically updated."
)

_BUY_EDITABLE = {"event_date", "price", "investment", "allocation"}
_SELL_EDITABLE = {"event_date", "price", "quantity", "lot_id"}


@contextmanager
def store_reads() -> Iterator[None]:
    """Raises UpstreamUnavailable when the store cannot be reached during a read."""
    try:
        yield
    except (ConnectionError, TimeoutError) as e:
        raise UpstreamUnavailable("ledger store", str(e)) from e


class _StockContext:
    """Everything loaded for one stock during one operation."""
    def __init__(self, stock: Stock, events: list[LedgerEvent], lots: list[Lot]):
        self.stock = stock
        self.events = events
        self.lots = {lot.lot_id: lot for lot in lots}
        self.pool = LotPool(lots)

    def event(self, event_id: str) -> LedgerEvent:
        for event in self.events:
            if event.event_id == event_id:
                return event
        raise EventNotFound(event_id)

    @property
    def splits(self) -> SplitAdjuster:
        return SplitAdjuster.from_events(self.events)


class WalletService:
    """
    Records, edits and deletes ledger events against a repository, keeping the
    stock's lots and cash fields in step.

    Every mutating call holds the stock's lock from the first read to the last
    write. All changes are computed in memory first. A rejected store write
    undoes the writes already made and is raised as StoreWriteError.
    """
    def __init__(
        self,
        repository: LedgerRepository,
        price_feed: Optional[PriceFeed] = None,
        lock_registry: Optional[StockLockRegistry] = None,
        summary_builder: Optional[SummaryBuilder] = None
    ):
        self._repository = repository
        self._price_feed = price_feed
        self._locks = lock_registry or StockLockRegistry()
        self._summaries = summary_builder or SummaryBuilder()

    # --- Reads ---

    def load_events(self, stock_id: str) -> list[LedgerEvent]:
        """Assembles the complete event list across all store pages."""
        events: list[LedgerEvent] = []
        token: Optional[str] = None
        with store_reads():
            while True:
                page = self._repository.list_events(stock_id, limit=settings.EVENT_PAGE_SIZE, next_token=token)
                events.extend(page.events)
                token = page.next_token
                if not token:
                    return events

    def _load(self, stock_id: str) -> _StockContext:
        with store_reads():
            stock = self._repository.get_stock(stock_id)
            if stock is None:
                raise StockNotFound(stock_id)
            events = self.load_events(stock_id)
            lots = self._repository.list_lots(stock_id)
        return _StockContext(stock, events, lots)

    def _quote(self, symbol: str) -> Optional[PriceQuote]:
        if self._price_feed is None:
            return None
        try:
            return self._price_feed.get_price(symbol)
        except UpstreamUnavailable as e:
            logger.warning(f"Price feed unavailable for {symbol}: {e}")
            return None

    @staticmethod
    def _today() -> date:
        return datetime.now(timezone.utc).date()

    def stock_summary(self, stock_id: str, today: Optional[date] = None) -> StockSummary:
        ctx = self._load(stock_id)
        return self._summaries.stock_summary(
            ctx.stock, ctx.pool.all_lots(), ctx.events, self._quote(ctx.stock.symbol), today or self._today()
        )

    def portfolio_summary(self, today: Optional[date] = None, include_archived: bool = False) -> PortfolioSummary:
        with store_reads():
            stocks = self._repository.list_stocks()
        lots, events, quotes = [], [], {}
        for stock in stocks:
            with store_reads():
                lots.extend(self._repository.list_lots(stock.stock_id))
            events.extend(self.load_events(stock.stock_id))
            quote = self._quote(stock.symbol)
            if quote is not None:
                quotes[stock.symbol] = quote
        return self._summaries.portfolio_summary(
            stocks, lots, events, quotes, today or self._today(), include_archived=include_archived
        )

    # --- Mutations ---

    def record_event(self, event: LedgerEvent) -> OperationResult:
        """Applies a new ledger event to the stock's lots and stores it."""
        with self._locks.hold(event.stock_id):
            ctx = self._load(event.stock_id)
            if any(e.event_id == event.event_id for e in ctx.events):
                raise LedgerValidationError(f"event {event.event_id} already recorded", field="event_id")

            event = event.model_copy()
            calculator = EventCalculator(ctx.pool, ErrorReporter(), applied_splits=ctx.splits)
            warnings = calculator.apply_event(event, ctx.stock)

            stock = with_cash_flow(ctx.stock, replay_cash_flow(ctx.events + [event]))
            self._persist(ctx, stock, create=[event])
            logger.info(f"Recorded {event.event_type.value} {event.event_id} for {stock.symbol}.")
            return OperationResult(payload=event, warnings=warnings)

    def edit_buy(self, stock_id: str, event_id: str, changes: dict[str, Any],
                 refuse_committed: bool = False) -> OperationResult:
        """
        Edits a Buy and moves its contributions to the lots that match the new values.

        When a source lot already has sales the lots are left untouched. The edit is
        then still saved with a WALLET_NOT_UPDATED warning, or refused with
        CommittedLotConflict when refuse_committed is set.
        """
        with self._locks.hold(stock_id):
            ctx = self._load(stock_id)
            old = ctx.event(event_id)
            if old.event_type != EventType.BUY:
                raise LedgerValidationError(f"event {event_id} is not a Buy", field="event_type")
            new = self._edited(old, changes, _BUY_EDITABLE)
            split = derive_buy_fields(new, ctx.stock)
            warnings = list(split.warnings)

            # Splits recorded after either date are already reflected in the lots.
            splits = ctx.splits
            try:
                ctx.pool.relocate_buy(
                    stock_id,
                    old=buy_contributions(old, ctx.stock, splits),
                    new=buy_contributions(new, ctx.stock, splits),
                    commission_percent=ctx.stock.commission_percent
                )
            except CommittedLotConflict as e:
                if refuse_committed:
                    raise
                logger.warning(f"Buy {event_id}: {WALLET_NOT_UPDATED_MESSAGE} ({e.lot_id})")
                warnings.append(EngineWarning(
                    code=WarningCode.WALLET_NOT_UPDATED,
                    message=f"{WALLET_NOT_UPDATED_MESSAGE} {e.message}",
                    event_id=event_id,
                ))

            events = [new if e.event_id == event_id else e for e in ctx.events]
            stock = with_cash_flow(ctx.stock, replay_cash_flow(events))
            self._persist(ctx, stock, update=[new])
            return OperationResult(payload=new, warnings=warnings)

    def edit_sell(self, stock_id: str, event_id: str, changes: dict[str, Any]) -> OperationResult:
        """Reverses the original sale and applies the edited one."""
        with self._locks.hold(stock_id):
            ctx = self._load(stock_id)
            old = ctx.event(event_id)
            if old.event_type != EventType.SELL:
                raise LedgerValidationError(f"event {event_id} is not a Sell", field="event_type")
            new = self._edited(old, changes, _SELL_EDITABLE)

            splits = ctx.splits
            self._reverse_sell(ctx, old, splits)
            calculator = EventCalculator(ctx.pool, ErrorReporter(), applied_splits=splits)
            warnings = calculator.apply_event(new, ctx.stock)

            events = [new if e.event_id == event_id else e for e in ctx.events]
            stock = with_cash_flow(ctx.stock, replay_cash_flow(events))
            self._persist(ctx, stock, update=[new])
            return OperationResult(payload=new, warnings=warnings)

    def edit_income(self, stock_id: str, event_id: str, changes: dict[str, Any]) -> OperationResult:
        with self._locks.hold(stock_id):
            ctx = self._load(stock_id)
            old = ctx.event(event_id)
            if not EventType(old.event_type).is_income:
                raise LedgerValidationError(f"event {event_id} is not a Dividend or Lending payment", field="event_type")
            new = self._edited(old, changes, {"event_date", "amount"})
            events = [new if e.event_id == event_id else e for e in ctx.events]
            stock = with_cash_flow(ctx.stock, replay_cash_flow(events))
            self._persist(ctx, stock, update=[new])
            return OperationResult(payload=new)

    def delete_event(self, stock_id: str, event_id: str) -> OperationResult:
        """
        Deletes a ledger event and undoes its effect on the lots. Buys whose lots have
        sales and recorded splits cannot be deleted. Lots emptied here are kept.
        """
        with self._locks.hold(stock_id):
            ctx = self._load(stock_id)
            event = ctx.event(event_id)
            splits = ctx.splits
            event_type = EventType(event.event_type)

            if event_type == EventType.SELL:
                self._reverse_sell(ctx, event, splits)
            elif event_type == EventType.BUY:
                ctx.pool.relocate_buy(
                    stock_id, old=buy_contributions(event, ctx.stock, splits), new=[],
                    commission_percent=ctx.stock.commission_percent
                )
            elif event_type == EventType.STOCK_SPLIT:
                raise LedgerValidationError(
                    "a recorded split cannot be deleted; record the inverse split instead", field="event_type"
                )

            events = [e for e in ctx.events if e.event_id != event_id]
            stock = with_cash_flow(ctx.stock, replay_cash_flow(events))
            self._persist(ctx, stock, delete=[event_id])
            logger.info(f"Deleted {event_type.value} {event_id} of {stock.symbol}.")
            return OperationResult(payload=event)

    def delete_lot(self, stock_id: str, lot_id: str) -> OperationResult:
        """Removes a lot with no remaining shares, on explicit request only."""
        with self._locks.hold(stock_id):
            ctx = self._load(stock_id)
            lot = ctx.pool.remove_lot(lot_id)
            self._persist(ctx, None)
            return OperationResult(payload=lot)

    def recalculate_cash_flow(self, stock_id: str) -> OperationResult:
        """Rebuilds the stock's out-of-pocket and cash balance from its full ledger."""
        with self._locks.hold(stock_id):
            ctx = self._load(stock_id)
            stock = with_cash_flow(ctx.stock, replay_cash_flow(ctx.events))
            self._check(self._repository.update_stock(stock), "update_stock")
            return OperationResult(payload=stock)

    # --- Internals ---

    @staticmethod
    def _edited(old: LedgerEvent, changes: dict[str, Any], editable: set[str]) -> LedgerEvent:
        unknown = set(changes) - editable
        if unknown:
            raise LedgerValidationError(f"cannot edit {', '.join(sorted(unknown))}")
        data = old.model_dump()
        data.update(changes)
        for derived in ("txn_profit", "txn_profit_percent", "buy_price_at_sale", "strategy", "error_reason"):
            data[derived] = None
        try:
            return LedgerEvent.model_validate(data)
        except ValueError as e:
            raise LedgerValidationError(str(e)) from e

    @staticmethod
    def _reverse_sell(ctx: _StockContext, sell: LedgerEvent, splits: SplitAdjuster):
        price, quantity = splits.adjust(sell.price, sell.quantity, since=sell.event_date)
        ctx.pool.reverse_sale(
            sell.lot_id, quantity, price,
            commission_percent=ctx.stock.commission_percent,
            profit=sell.txn_profit
        )

    @staticmethod
    def _check(result: StoreResult, operation: str):
        if not result.success:
            raise StoreWriteError(operation, result.errors)

    def _persist(
        self,
        ctx: _StockContext,
        stock: Optional[Stock],
        create: Optional[list[LedgerEvent]] = None,
        update: Optional[list[LedgerEvent]] = None,
        delete: Optional[list[str]] = None
    ):
        """
        Writes the event changes, then the lots they imply, then the stock. When the
        store rejects a write, the writes already made are undone newest first and
        the StoreWriteError is raised.
        """
        repository = self._repository
        changes = ctx.pool.pending_changes()
        undo: list[tuple[str, Callable[[], StoreResult]]] = []
        try:
            for event in create or []:
                self._check(repository.create_event(event), "create_event")
                undo.append(("delete_event", partial(repository.delete_event, event.event_id)))
            for event in update or []:
                self._check(repository.update_event(event), "update_event")
                undo.append(("update_event", partial(repository.update_event, ctx.event(event.event_id))))
            for event_id in delete or []:
                self._check(repository.delete_event(event_id), "delete_event")
                undo.append(("create_event", partial(repository.create_event, ctx.event(event_id))))
            for lot in changes.created:
                self._check(repository.create_lot(lot), "create_lot")
                undo.append(("delete_lot", partial(self._discard_lot, lot)))
            for lot in changes.updated:
                self._check(repository.update_lot(lot), "update_lot")
                # The store only accepts a newer version than the one just written.
                restored = ctx.lots[lot.lot_id].model_copy(update={"version": lot.version + 1})
                undo.append(("update_lot", partial(repository.update_lot, restored)))
            for lot in changes.deleted:
                self._check(repository.delete_lot(lot.lot_id), "delete_lot")
                undo.append(("create_lot", partial(repository.create_lot, ctx.lots[lot.lot_id])))
            if stock is not None:
                self._check(repository.update_stock(stock), "update_stock")
        except StoreWriteError as e:
            logger.error(f"{e.message}; undoing {len(undo)} earlier write(s).")
            self._undo(undo)
            raise
        ctx.pool.mark_persisted()

    def _discard_lot(self, lot: Lot) -> StoreResult:
        """Empties a lot written by a failed operation, then deletes it."""
        emptied = lot.model_copy(update={
            "total_shares_qty": ZERO, "total_investment": ZERO, "shares_sold": ZERO,
            "remaining_shares": ZERO, "version": lot.version + 1,
        })
        result = self._repository.update_lot(emptied)
        return self._repository.delete_lot(lot.lot_id) if result.success else result

    @staticmethod
    def _undo(undo: list[tuple[str, Callable[[], StoreResult]]]):
        for operation, write in reversed(undo):
            result = write()
            if not result.success:
                logger.error(f"Could not undo with {operation}: {StoreWriteError(operation, result.errors).message}")
