# wallet_engine/core/models/request.py

from pydantic import BaseModel, Field, ConfigDict

from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.lot import Lot
from wallet_engine.core.models.price import PriceQuote
from wallet_engine.core.models.stock import Stock


class WalletProcessingRequest(BaseModel):
    """
    Input payload for applying new ledger events to a stock's lots.
    """
    stock: Stock = Field(..., description="The stock the events belong to, with its current parameters")
    existing_lots: list[Lot] = Field(
        default_factory=list,
        description="The stock's lots as they stand after all existing events."
    )
    existing_events: list[dict] = Field(
        default_factory=list,
        description="Previously processed events (raw dictionaries), used for ordering, splits and cash flow."
    )
    new_events: list[dict] = Field(
        ...,
        description="New events to apply (raw dictionaries, possibly backdated)."
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "stock": {
                    "stock_id": "AAPL",
                    "symbol": "AAPL",
                    "swing_hold_ratio": 50,
                    "pdp": 5,
                    "stp": 10,
                    "htp": 10,
                    "commission_percent": 0,
                    "budget": 5000
                },
                "existing_lots": [],
                "existing_events": [],
                "new_events": [
                    {
                        "event_id": "buy_001",
                        "stock_id": "AAPL",
                        "event_type": "BUY",
                        "event_date": "2024-01-10",
                        "price": 100,
                        "investment": 1000,
                        "allocation": "SPLIT"
                    }
                ]
            }
        },
        extra='ignore'
    )


class PortfolioSummaryRequest(BaseModel):
    """
    Input payload for computing per-stock and portfolio views.
    """
    stocks: list[Stock] = Field(..., description="Stocks to summarize")
    lots: list[Lot] = Field(default_factory=list, description="Lots of all listed stocks")
    events: list[LedgerEvent] = Field(default_factory=list, description="Ledger events of all listed stocks")
    prices: list[PriceQuote] = Field(default_factory=list, description="Quotes by symbol; missing symbols have no price")
    include_archived: bool = Field(default=False, description="Include soft-archived stocks")

    model_config = ConfigDict(extra='ignore')
