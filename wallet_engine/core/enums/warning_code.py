# wallet_engine/core/enums/warning_code.py

from enum import Enum

class WarningCode(str, Enum):
    """Codes for non-fatal diagnostics returned alongside engine results."""
    ROUNDING_ADJUSTED = "ROUNDING_ADJUSTED"
    WALLET_NOT_UPDATED = "WALLET_NOT_UPDATED"
    SPLIT_ALREADY_APPLIED = "SPLIT_ALREADY_APPLIED"
    PL_INCONSISTENCY = "PL_INCONSISTENCY"
    PRICE_UNAVAILABLE = "PRICE_UNAVAILABLE"
