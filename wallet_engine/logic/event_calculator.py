# wallet_engine/logic/event_calculator.py

import logging
from decimal import Decimal
from typing import Optional, Protocol

from wallet_engine.core.config.settings import settings
from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.enums.strategy import BuyAllocation, Strategy
from wallet_engine.core.enums.warning_code import WarningCode
from wallet_engine.core.exceptions import LedgerValidationError, WalletEngineError
from wallet_engine.core.models.diagnostics import EngineWarning
from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.stock import Stock
from wallet_engine.logic.cost_objects import Contribution
from wallet_engine.logic.error_reporter import ErrorReporter
from wallet_engine.logic.lot_pool import LotPool
from wallet_engine.logic.numeric import (
    HUNDRED, round_currency, round_price, round_shares, to_decimal
)
from wallet_engine.logic.split_adjuster import SplitAdjuster, SplitRecord
from wallet_engine.logic.target_prices import drop_buy_target, take_profit_target

logger = logging.getLogger(__name__)


class BuySplit:
    """How one Buy's shares and investment divide between Swing and Hold."""
    def __init__(self, quantity: Decimal, swing_shares: Decimal, hold_shares: Decimal,
                 swing_investment: Decimal, hold_investment: Decimal,
                 warnings: Optional[list[EngineWarning]] = None):
        self.quantity = quantity
        self.swing_shares = swing_shares
        self.hold_shares = hold_shares
        self.swing_investment = swing_investment
        self.hold_investment = hold_investment
        self.warnings = warnings or []


def swing_fraction(allocation: BuyAllocation, swing_hold_ratio=None) -> Decimal:
    """Fraction of a Buy that goes to Swing. SPLIT falls back to the default ratio when unset."""
    allocation = BuyAllocation(allocation)
    if allocation == BuyAllocation.SWING:
        return Decimal(1)
    if allocation == BuyAllocation.HOLD:
        return Decimal(0)
    ratio = to_decimal(swing_hold_ratio)
    if ratio is None or ratio < 0 or ratio > HUNDRED:
        ratio = Decimal(settings.DEFAULT_SWING_HOLD_RATIO)
    return ratio / HUNDRED


def split_buy(investment, price, allocation: BuyAllocation, swing_hold_ratio=None,
              event_id: Optional[str] = None) -> BuySplit:
    """
    Divides a Buy between Swing and Hold. swing_shares + hold_shares always equals
    round_shares(investment / price); a rounding residual is moved onto Hold.
    """
    investment, price = to_decimal(investment), to_decimal(price)
    if investment is None or investment <= 0:
        raise LedgerValidationError("must be positive", field="investment")
    if price is None or price <= 0:
        raise LedgerValidationError("must be positive", field="price")

    quantity = round_shares(investment / price)
    if quantity == 0:
        raise LedgerValidationError(f"investment {investment} buys no shares at {price}", field="investment")

    ratio = swing_fraction(allocation, swing_hold_ratio)
    swing = round_shares(quantity * ratio)
    hold = round_shares(quantity * (1 - ratio))
    warnings: list[EngineWarning] = []
    if swing + hold != quantity:
        adjusted = round_shares(quantity - swing)
        logger.warning(f"Buy {event_id}: swing {swing} + hold {hold} != {quantity}; hold adjusted to {adjusted}.")
        warnings.append(EngineWarning(
            code=WarningCode.ROUNDING_ADJUSTED,
            message=f"Hold shares adjusted from {hold} to {adjusted} so the split sums to {quantity}",
            event_id=event_id,
        ))
        hold = adjusted

    swing_investment = round_currency(investment * swing / quantity)
    hold_investment = round_currency(investment - swing_investment)
    return BuySplit(quantity, swing, hold, swing_investment, hold_investment, warnings)


def derive_buy_fields(event: LedgerEvent, stock: Stock) -> BuySplit:
    """Fills in a Buy's derived quantity, per-strategy shares and targets."""
    allocation = event.allocation or BuyAllocation.SPLIT
    split = split_buy(event.investment, event.price, allocation, stock.swing_hold_ratio, event.event_id)
    event.allocation = allocation
    event.quantity = split.quantity
    event.swing_shares = split.swing_shares
    event.hold_shares = split.hold_shares
    event.drop_buy_target = drop_buy_target(event.price, stock.pdp, stock.commission_percent)
    event.take_profit_target = take_profit_target(event.price, stock.stp, stock.commission_percent)
    return split


def buy_contributions(event: LedgerEvent, stock: Stock, splits: Optional[SplitAdjuster] = None) -> list[Contribution]:
    """
    The per-lot contributions of an already-derived Buy, in the units of the lots
    today: prices and shares are adjusted for splits recorded after the Buy.
    """
    if event.quantity is None or (event.swing_shares is None and event.hold_shares is None):
        event = event.model_copy()
        derive_buy_fields(event, stock)
    price, quantity = to_decimal(event.price), to_decimal(event.quantity)
    swing_shares = to_decimal(event.swing_shares) or Decimal(0)
    hold_shares = to_decimal(event.hold_shares) or Decimal(0)

    factor = splits.factor(event.event_date) if splits is not None else Decimal(1)
    lot_price = round_price(price / factor)
    swing_investment = round_currency(to_decimal(event.investment) * swing_shares / quantity)
    hold_investment = round_currency(to_decimal(event.investment) - swing_investment)

    contributions = []
    if swing_shares > 0:
        contributions.append(Contribution(Strategy.SWING, lot_price, swing_shares * factor,
                                          swing_investment, stock.stp))
    if hold_shares > 0:
        contributions.append(Contribution(Strategy.HOLD, lot_price, hold_shares * factor,
                                          hold_investment, stock.htp))
    return contributions


class LedgerEventStrategy(Protocol):
    """
    Protocol (interface) for per-event-type processing.
    Each strategy derives the event's computed fields and applies its effect to the lot pool.
    """
    def apply(
        self,
        event: LedgerEvent,
        stock: Stock,
        lot_pool: LotPool,
        splits: SplitAdjuster
    ) -> list[EngineWarning]:
        """
        Modifies the event (and the pool) in place; raises WalletEngineError on rejection.
        `splits` holds the splits already applied to the pool's lots.
        """
        ...


class BuyStrategy:
    """Splits the Buy by strategy, derives its targets and contributes to the matching lots."""
    def apply(self, event: LedgerEvent, stock: Stock, lot_pool: LotPool, splits: SplitAdjuster) -> list[EngineWarning]:
        split = derive_buy_fields(event, stock)
        for contribution in buy_contributions(event, stock, splits):
            lot_pool.contribute(
                stock.stock_id, contribution.strategy, contribution.buy_price,
                contribution.shares, contribution.investment,
                tp_percent=contribution.tp_percent,
                commission_percent=stock.commission_percent
            )
        return split.warnings


class SellStrategy:
    """Draws the sale down from its lot and records the realized profit on the event."""
    def apply(self, event: LedgerEvent, stock: Stock, lot_pool: LotPool, splits: SplitAdjuster) -> list[EngineWarning]:
        lot = lot_pool.get(event.lot_id)
        if lot.stock_id != stock.stock_id:
            raise LedgerValidationError(f"lot {lot.lot_id} belongs to stock {lot.stock_id}", field="lot_id")

        quantity = round_shares(event.quantity)
        factor = splits.factor(event.event_date)
        sale = lot_pool.apply_sale(lot.lot_id, quantity * factor, to_decimal(event.price) / factor,
                                   stock.commission_percent)
        event.quantity = quantity
        event.strategy = lot.strategy
        event.buy_price_at_sale = round_price(lot.buy_price * factor)
        event.txn_profit = sale.profit
        event.txn_profit_percent = sale.profit_percent
        return []


class IncomeStrategy:
    """Dividends and stock-lending payments never touch lots."""
    def apply(self, event: LedgerEvent, stock: Stock, lot_pool: LotPool, splits: SplitAdjuster) -> list[EngineWarning]:
        event.amount = round_currency(event.amount)
        return []


class StockSplitStrategy:
    """Adjusts every lot of the stock in place and records the split on the stock."""
    def apply(self, event: LedgerEvent, stock: Stock, lot_pool: LotPool, splits: SplitAdjuster) -> list[EngineWarning]:
        adjusted, skipped = lot_pool.apply_stock_split(stock.stock_id, event.split_multiplier, event.event_id)
        if skipped:
            return [EngineWarning(
                code=WarningCode.SPLIT_ALREADY_APPLIED,
                message=f"Split already applied to {len(skipped)} lot(s); they were left unchanged",
                event_id=event.event_id,
            )]
        stock.split_adjustment_factor = stock.split_adjustment_factor * event.split_multiplier
        return []


class EventCalculator:
    """
    Applies the appropriate strategy based on event type.

    `applied_splits` are the splits already reflected in the pool's lots; each
    STOCK_SPLIT applied through the calculator is added to them.
    """

    def __init__(
        self,
        lot_pool: LotPool,
        error_reporter: ErrorReporter,
        applied_splits: Optional[SplitAdjuster] = None
    ):
        self._lot_pool = lot_pool
        self._error_reporter = error_reporter
        self._splits = applied_splits or SplitAdjuster()
        self._strategies: dict[EventType, LedgerEventStrategy] = {
            EventType.BUY: BuyStrategy(),
            EventType.SELL: SellStrategy(),
            EventType.DIVIDEND: IncomeStrategy(),
            EventType.STOCK_LENDING_PAYMENT: IncomeStrategy(),
            EventType.STOCK_SPLIT: StockSplitStrategy(),
        }

    @property
    def applied_splits(self) -> SplitAdjuster:
        return self._splits

    def apply_event(self, event: LedgerEvent, stock: Stock) -> list[EngineWarning]:
        """Applies one event. Raises WalletEngineError when the event is rejected."""
        if event.stock_id != stock.stock_id:
            raise LedgerValidationError(f"event belongs to stock {event.stock_id}, not {stock.stock_id}", field="stock_id")
        strategy = self._strategies.get(EventType(event.event_type))
        if strategy is None:
            raise LedgerValidationError(f"Unknown event type '{event.event_type}'", field="event_type")

        warnings = strategy.apply(event, stock, self._lot_pool, self._splits)
        known = {s.event_id for s in self._splits.splits}
        if event.event_type == EventType.STOCK_SPLIT and event.event_id not in known:
            record = SplitRecord(event.event_id, event.event_date, to_decimal(event.split_multiplier))
            self._splits = SplitAdjuster(self._splits.splits + [record])
        return warnings

    def process_event(self, event: LedgerEvent, stock: Stock) -> bool:
        """
        Batch variant of apply_event: rejections and warnings go to the ErrorReporter.
        Returns True when the event was applied.
        """
        try:
            warnings = self.apply_event(event, stock)
        except WalletEngineError as e:
            event.error_reason = str(e)
            self._error_reporter.add_error(event.event_id, str(e))
            return False
        for warning in warnings:
            self._error_reporter.add_warning(warning)
        return True
