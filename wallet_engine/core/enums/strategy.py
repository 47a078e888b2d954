# wallet_engine/core/enums/strategy.py

from enum import Enum

class Strategy(str, Enum):
    """The two parallel sub-portfolios a stock's lots belong to."""
    SWING = "SWING"
    HOLD = "HOLD"


class BuyAllocation(str, Enum):
    """
    How a Buy is assigned to strategies.
    SPLIT divides the shares by the stock's swing/hold ratio.
    """
    SWING = "SWING"
    HOLD = "HOLD"
    SPLIT = "SPLIT"
