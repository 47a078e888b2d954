# wallet_engine/logic/target_prices.py

"""
Commission-adjusted target prices. All functions are pure.

A commission of 0, None, or 100% and above leaves the nominal target unchanged.
"""

from decimal import Decimal
from typing import Optional

from wallet_engine.logic.numeric import (
    HUNDRED, round_currency, round_percent, round_target_price, to_decimal
)


def _commission_fraction(commission_percent) -> Optional[Decimal]:
    """Commission as a fraction, or None when no adjustment applies."""
    c = to_decimal(commission_percent)
    if c is None or c <= 0 or c >= HUNDRED:
        return None
    return c / HUNDRED


def drop_buy_target(buy_price, pdp, commission_percent=None) -> Optional[Decimal]:
    """
    buy_price * (1 - pdp/100), divided by (1 + commission) so that buying at the
    returned price plus commission costs exactly the nominal target. 2 decimals.
    """
    price, pdp = to_decimal(buy_price), to_decimal(pdp)
    if price is None or pdp is None:
        return None
    target = price * (1 - pdp / HUNDRED)
    c = _commission_fraction(commission_percent)
    if c is not None:
        target = target / (1 + c)
    return round_currency(target)


def take_profit_target(buy_price, tp_percent, commission_percent=None) -> Optional[Decimal]:
    """
    buy_price * (1 + tp_percent/100), divided by (1 - commission) so that selling
    at the returned price nets exactly the nominal target after commission. 4 decimals.
    """
    price, tp = to_decimal(buy_price), to_decimal(tp_percent)
    if price is None or tp is None:
        return None
    target = price * (1 + tp / HUNDRED)
    c = _commission_fraction(commission_percent)
    if c is not None:
        target = target / (1 - c)
    return round_target_price(target)


def hold_take_profit_target(buy_price, htp, commission_percent=None) -> Optional[Decimal]:
    return take_profit_target(buy_price, htp, commission_percent)


def is_hold_take_profit_active(current_price, buy_price, htp, commission_percent=None) -> bool:
    price = to_decimal(current_price)
    target = hold_take_profit_target(buy_price, htp, commission_percent)
    if price is None or target is None:
        return False
    return price >= target


def percent_to_target(current_price, target) -> Optional[Decimal]:
    """(current / target - 1) * 100. Display and sorting only."""
    price, target = to_decimal(current_price), to_decimal(target)
    if price is None or target is None or target <= 0:
        return None
    return round_percent((price / target - 1) * HUNDRED)
