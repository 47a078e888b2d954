# wallet_engine/logic/budget_risk.py

"""
Tied-up capital, risk investment and budget figures for a stock. Pure, read-only.
"""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from wallet_engine.core.models.lot import Lot
from wallet_engine.core.models.stock import Stock
from wallet_engine.core.models.views import BudgetView
from wallet_engine.logic.numeric import (
    HUNDRED, ZERO, clamp_non_negative, round_currency, round_percent, to_decimal
)

logger = logging.getLogger(__name__)


def lot_tied_up(lot: Lot) -> Decimal:
    """Average investment per share times shares still held."""
    return lot.investment_per_share * lot.remaining_shares


def tied_up_investment(lots: Iterable[Lot]) -> Decimal:
    return round_currency(sum((lot_tied_up(lot) for lot in lots if lot.is_open), ZERO))


def risk_investment(lots: Iterable[Lot], current_price) -> tuple[Decimal, bool]:
    """
    Tied-up investment minus the part sitting in lots whose take-profit is already
    reached. Without a price every lot counts as at risk.

    Returns (risk investment, price_available).
    """
    lots = [lot for lot in lots if lot.is_open]
    price = to_decimal(current_price)
    total = sum((lot_tied_up(lot) for lot in lots), ZERO)
    if price is None:
        return round_currency(total), False
    covered = sum(
        (lot_tied_up(lot) for lot in lots if lot.tp_value is not None and lot.tp_value <= price),
        ZERO
    )
    return round_currency(total - covered), True


def market_value(lots: Iterable[Lot], current_price) -> Optional[Decimal]:
    price = to_decimal(current_price)
    if price is None:
        return None
    return round_currency(sum((lot.remaining_shares for lot in lots if lot.is_open), ZERO) * price)


def budget_used(total_out_of_pocket, current_cash_balance) -> Decimal:
    return round_currency(clamp_non_negative(to_decimal(total_out_of_pocket) - to_decimal(current_cash_balance)))


def budget_available(budget, used) -> Optional[Decimal]:
    budget = to_decimal(budget)
    if budget is None:
        return None
    return round_currency(clamp_non_negative(budget - to_decimal(used)))


def portfolio_roic(cash_balance, market_value_total, total_out_of_pocket) -> Optional[Decimal]:
    """(cash + market value - out of pocket) / out of pocket * 100; None when nothing was paid in."""
    oop = to_decimal(total_out_of_pocket)
    if oop is None or oop <= 0:
        return None
    return round_percent((to_decimal(cash_balance) + to_decimal(market_value_total) - oop) / oop * HUNDRED)


def budget_view(stock: Stock, lots: Iterable[Lot], current_price) -> BudgetView:
    lots = [lot for lot in lots if lot.stock_id == stock.stock_id]
    risk, price_available = risk_investment(lots, current_price)
    if not price_available:
        logger.debug(f"No price for {stock.symbol}; risk investment equals tied-up investment.")
    used = budget_used(stock.total_out_of_pocket, stock.current_cash_balance)
    value = market_value(lots, current_price)
    return BudgetView(
        tied_up_investment=tied_up_investment(lots),
        risk_investment=risk,
        price_available=price_available,
        budget=stock.budget,
        budget_used=used,
        budget_available=budget_available(stock.budget, used),
        market_value=value,
        roic=portfolio_roic(stock.current_cash_balance, value, stock.total_out_of_pocket) if value is not None else None,
    )
