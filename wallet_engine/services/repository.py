# wallet_engine/services/repository.py

import logging
from typing import Optional, Protocol

from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.lot import Lot
from wallet_engine.core.models.price import PriceQuote
from wallet_engine.core.models.stock import Stock
from wallet_engine.core.models.store import EventPage, StoreResult

logger = logging.getLogger(__name__)


class LedgerRepository(Protocol):
    """
    Protocol (interface) for the persistent store of stocks, ledger events and lots.
    Write methods report field-level errors through StoreResult instead of raising.
    """
    def get_stock(self, stock_id: str) -> Optional[Stock]: ...

    def list_stocks(self) -> list[Stock]: ...

    def list_events(self, stock_id: str, limit: int, next_token: Optional[str] = None) -> EventPage: ...

    def list_lots(self, stock_id: str) -> list[Lot]: ...

    def create_lot(self, lot: Lot) -> StoreResult: ...

    def update_lot(self, lot: Lot) -> StoreResult: ...

    def delete_lot(self, lot_id: str) -> StoreResult: ...

    def create_event(self, event: LedgerEvent) -> StoreResult: ...

    def update_event(self, event: LedgerEvent) -> StoreResult: ...

    def delete_event(self, event_id: str) -> StoreResult: ...

    def update_stock(self, stock: Stock) -> StoreResult: ...


class PriceFeed(Protocol):
    """Protocol (interface) for the price feed. None means no quote is available."""
    def get_price(self, symbol: str) -> Optional[PriceQuote]: ...


class InMemoryLedgerRepository:
    """
    Dict-backed LedgerRepository. Events are paged by insertion order; the
    next_token is the offset of the next page.
    """
    def __init__(self, stocks: Optional[list[Stock]] = None):
        self._stocks: dict[str, Stock] = {s.stock_id: s for s in (stocks or [])}
        self._events: dict[str, LedgerEvent] = {}
        self._lots: dict[str, Lot] = {}

    def get_stock(self, stock_id: str) -> Optional[Stock]:
        stock = self._stocks.get(stock_id)
        return stock.model_copy() if stock else None

    def list_stocks(self) -> list[Stock]:
        return [s.model_copy() for s in self._stocks.values()]

    def list_events(self, stock_id: str, limit: int, next_token: Optional[str] = None) -> EventPage:
        matching = [e for e in self._events.values() if e.stock_id == stock_id]
        start = int(next_token) if next_token else 0
        page = matching[start:start + limit]
        has_more = start + limit < len(matching)
        return EventPage(
            events=[e.model_copy() for e in page],
            next_token=str(start + limit) if has_more else None,
        )

    def list_lots(self, stock_id: str) -> list[Lot]:
        return [lot.model_copy() for lot in self._lots.values() if lot.stock_id == stock_id]

    def create_lot(self, lot: Lot) -> StoreResult:
        if lot.lot_id in self._lots:
            return StoreResult.failed("lot_id", f"lot {lot.lot_id} already exists")
        self._lots[lot.lot_id] = lot.model_copy()
        return StoreResult.ok()

    def update_lot(self, lot: Lot) -> StoreResult:
        current = self._lots.get(lot.lot_id)
        if current is None:
            return StoreResult.failed("lot_id", f"lot {lot.lot_id} does not exist")
        if lot.version <= current.version:
            return StoreResult.failed("version", f"lot {lot.lot_id} was changed concurrently")
        self._lots[lot.lot_id] = lot.model_copy()
        return StoreResult.ok()

    def delete_lot(self, lot_id: str) -> StoreResult:
        lot = self._lots.get(lot_id)
        if lot is None:
            return StoreResult.failed("lot_id", f"lot {lot_id} does not exist")
        if lot.remaining_shares != 0:
            return StoreResult.failed("remaining_shares", "only empty lots can be deleted")
        del self._lots[lot_id]
        return StoreResult.ok()

    def create_event(self, event: LedgerEvent) -> StoreResult:
        if event.event_id in self._events:
            return StoreResult.failed("event_id", f"event {event.event_id} already exists")
        self._events[event.event_id] = event.model_copy()
        return StoreResult.ok()

    def update_event(self, event: LedgerEvent) -> StoreResult:
        if event.event_id not in self._events:
            return StoreResult.failed("event_id", f"event {event.event_id} does not exist")
        self._events[event.event_id] = event.model_copy()
        return StoreResult.ok()

    def delete_event(self, event_id: str) -> StoreResult:
        if self._events.pop(event_id, None) is None:
            return StoreResult.failed("event_id", f"event {event_id} does not exist")
        return StoreResult.ok()

    def update_stock(self, stock: Stock) -> StoreResult:
        if stock.stock_id not in self._stocks:
            return StoreResult.failed("stock_id", f"stock {stock.stock_id} does not exist")
        self._stocks[stock.stock_id] = stock.model_copy()
        return StoreResult.ok()


class StaticPriceFeed:
    """PriceFeed over a fixed set of quotes."""
    def __init__(self, quotes: Optional[list[PriceQuote]] = None):
        self._quotes: dict[str, PriceQuote] = {q.symbol: q for q in (quotes or [])}

    def get_price(self, symbol: str) -> Optional[PriceQuote]:
        return self._quotes.get(symbol)
