# wallet_engine/core/enums/event_type.py

from enum import Enum

class EventType(str, Enum):
    """
    Defines the supported kinds of ledger events.
    Inheriting from 'str' ensures that the enum values are strings,
    making them directly usable and comparable with string inputs.
    """
    BUY = "BUY"
    SELL = "SELL"
    DIVIDEND = "DIVIDEND"
    STOCK_LENDING_PAYMENT = "STOCK_LENDING_PAYMENT"
    STOCK_SPLIT = "STOCK_SPLIT"

    @property
    def is_income(self) -> bool:
        return self in (EventType.DIVIDEND, EventType.STOCK_LENDING_PAYMENT)
