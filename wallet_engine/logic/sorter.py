# wallet_engine/logic/sorter.py

from decimal import Decimal
from typing import List

from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.models.ledger_event import LedgerEvent

# Same-day processing order: buys fund sells, and a split is applied after the day's trades.
_TYPE_RANK = {
    EventType.BUY: 0,
    EventType.SELL: 1,
    EventType.DIVIDEND: 2,
    EventType.STOCK_LENDING_PAYMENT: 3,
    EventType.STOCK_SPLIT: 4,
}


class LedgerEventSorter:
    """
    Responsible for merging lists of ledger events and sorting them
    according to defined processing rules.
    """

    @staticmethod
    def sort_key(event: LedgerEvent):
        quantity = event.quantity if event.quantity is not None else Decimal(0)
        return (event.event_date, _TYPE_RANK[EventType(event.event_type)], -quantity)

    def sort_events(
        self,
        existing_events: List[LedgerEvent],
        new_events: List[LedgerEvent]
    ) -> List[LedgerEvent]:
        """
        Merges existing and new events and sorts them.

        Sorting Rules:
        1. Primary sort: event_date ascending.
        2. Secondary sort: event type (BUY, SELL, DIVIDEND, STOCK_LENDING_PAYMENT, STOCK_SPLIT).
        3. Tertiary sort: quantity descending.

        The sort is stable, so events equal on all keys keep their input order.
        """
        all_events = existing_events + new_events
        all_events.sort(key=self.sort_key)
        return all_events
