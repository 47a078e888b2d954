# wallet_engine/logic/numeric.py

"""
Fixed-point helpers. Every share, currency, target and percent value the engine
stores or compares goes through one of these functions, so equality checks on
stored values are exact.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Optional

from wallet_engine.core.config.settings import settings

SHARE_QUANTUM = Decimal(1).scaleb(-settings.SHARE_PRECISION)
CURRENCY_QUANTUM = Decimal(1).scaleb(-settings.CURRENCY_PRECISION)
TARGET_PRICE_QUANTUM = Decimal(1).scaleb(-settings.TARGET_PRICE_PRECISION)
PERCENT_QUANTUM = Decimal(1).scaleb(-settings.PERCENT_PRECISION)
PRICE_QUANTUM = Decimal(1).scaleb(-settings.PRICE_PRECISION)
LOT_MATCH_QUANTUM = Decimal(1).scaleb(-settings.LOT_MATCH_PRECISION)

ZERO = Decimal(0)
HUNDRED = Decimal(100)


def to_decimal(value: Any) -> Optional[Decimal]:
    """Converts ints, floats and strings to Decimal via str(); None passes through."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _quantize(value: Decimal, quantum: Decimal) -> Decimal:
    result = to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)
    # Normalise -0.00000 to 0.00000
    return result if result != 0 else abs(result)


def round_shares(value) -> Decimal:
    """Rounds to 5 decimals; anything smaller than one share quantum becomes exactly 0."""
    return _quantize(value, SHARE_QUANTUM)


def round_currency(value) -> Decimal:
    return _quantize(value, CURRENCY_QUANTUM)


def round_target_price(value) -> Decimal:
    """Take-profit targets keep 4 decimals so a sale at the target realizes the nominal profit."""
    return _quantize(value, TARGET_PRICE_QUANTUM)


def round_percent(value) -> Decimal:
    return _quantize(value, PERCENT_QUANTUM)


def round_price(value) -> Decimal:
    """Stored per-share prices. Finer than currency so that split-adjusted prices stay precise."""
    return _quantize(value, PRICE_QUANTUM)


def lot_match_key(price) -> Decimal:
    """Quantized buy price used as the lot lookup key."""
    return _quantize(price, LOT_MATCH_QUANTUM)


def percent_of(part: Decimal, whole: Decimal) -> Optional[Decimal]:
    """
    part / whole * 100, rounded. 0 when both are 0; None when only whole is 0.
    """
    if whole == 0:
        return ZERO if part == 0 else None
    return round_percent(part / whole * HUNDRED)


def clamp_non_negative(value: Decimal) -> Decimal:
    return value if value > 0 else ZERO
