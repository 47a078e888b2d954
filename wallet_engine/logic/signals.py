# wallet_engine/logic/signals.py

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from wallet_engine.core.config.settings import settings
from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.enums.strategy import Strategy
from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.lot import Lot
from wallet_engine.core.models.price import PriceQuote
from wallet_engine.core.models.stock import Stock
from wallet_engine.core.models.views import SignalView
from wallet_engine.logic.numeric import to_decimal
from wallet_engine.logic.split_adjuster import SplitAdjuster
from wallet_engine.logic.target_prices import (
    drop_buy_target, hold_take_profit_target, is_hold_take_profit_active, percent_to_target
)

logger = logging.getLogger(__name__)


def dip_percent(current_price, reference_price, pdp) -> Optional[Decimal]:
    """Percent move from reference to current, reported only when it is a drop of at least pdp."""
    pdp = to_decimal(pdp)
    pct = percent_to_target(current_price, reference_price)
    if pct is None or pdp is None:
        return None
    return pct if pct <= -pdp else None


def five_day_dip(current_price, quote: Optional[PriceQuote], pdp,
                 lookback: int = settings.DIP_LOOKBACK_DAYS) -> Optional[Decimal]:
    """The deepest qualifying drop of the current price against each recent close."""
    if quote is None:
        return None
    dips = [
        pct for pct in (dip_percent(current_price, c.close, pdp) for c in quote.recent_closes(lookback))
        if pct is not None
    ]
    return min(dips) if dips else None


def last_buy(events: Iterable[LedgerEvent]) -> Optional[LedgerEvent]:
    buys = [e for e in events if e.event_type == EventType.BUY and e.price is not None]
    if not buys:
        return None
    return max(enumerate(buys), key=lambda pair: (pair[1].event_date, pair[0]))[1]


def evaluate_signals(
    stock: Stock,
    lots: Iterable[Lot],
    events: Iterable[LedgerEvent],
    quote: Optional[PriceQuote],
    today: date
) -> SignalView:
    """
    Buy-the-dip and take-profit signals of one stock. Distances to targets are
    for display and sorting; the *_active flags are the triggers.
    """
    events = [e for e in events if e.stock_id == stock.stock_id]
    open_lots = [lot for lot in lots if lot.stock_id == stock.stock_id and lot.is_open]
    swing = [lot for lot in open_lots if lot.strategy == Strategy.SWING]
    hold = [lot for lot in open_lots if lot.strategy == Strategy.HOLD]
    price = quote.current_price if quote is not None else None

    view = SignalView(
        price_available=price is not None,
        swing_wallet_count=len(swing),
        hold_wallet_count=len(hold),
    )

    latest = last_buy(events)
    last_buy_price = None
    if latest is not None:
        # Earlier buys are quoted in pre-split prices.
        last_buy_price, _ = SplitAdjuster.from_events(events).adjust(latest.price, Decimal(1), since=latest.event_date)
        view.days_since_last_buy = max(0, (today - latest.event_date).days)
        view.drop_buy_target = drop_buy_target(last_buy_price, stock.pdp, stock.commission_percent)

    if price is None:
        logger.debug(f"No price for {stock.symbol}; signals limited to lot counts and last buy.")
        return view

    view.five_day_dip_percent = five_day_dip(price, quote, stock.pdp)
    if last_buy_price is not None:
        view.last_buy_dip_percent = dip_percent(price, last_buy_price, stock.pdp)
    view.buy_dip_active = view.five_day_dip_percent is not None or view.last_buy_dip_percent is not None

    if swing:
        lowest_buy = min(swing, key=lambda lot: lot.buy_price)
        view.percent_to_break_even = percent_to_target(price, lowest_buy.buy_price)
        targets = [lot.tp_value for lot in swing if lot.tp_value is not None]
        if targets:
            view.percent_to_swing_tp = percent_to_target(price, min(targets))
            view.swing_tp_active = price >= min(targets)

    if hold and stock.htp is not None:
        lowest_hold = min(hold, key=lambda lot: lot.buy_price)
        view.percent_to_hold_tp = percent_to_target(
            price, hold_take_profit_target(lowest_hold.buy_price, stock.htp, stock.commission_percent)
        )
        view.hold_tp_active = any(
            is_hold_take_profit_active(price, lot.buy_price, stock.htp, stock.commission_percent)
            for lot in hold
        )

    return view
