# wallet_engine/core/models/response.py

from typing import List
from pydantic import BaseModel, Field, ConfigDict

from wallet_engine.core.models.diagnostics import EngineWarning
from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.lot import Lot
from wallet_engine.core.models.stock import Stock


class ErroredEvent(BaseModel):
    """
    Represents a ledger event that failed processing, along with the reason for failure.
    """
    event_id: str = Field(..., description="The ID of the event that failed.")
    error_reason: str = Field(..., description="The reason why the event processing failed.")


class WalletProcessingResponse(BaseModel):
    """
    Represents the output of processing new ledger events against a stock's lots.
    """
    processed_events: List[LedgerEvent] = Field(
        ...,
        description="New events that were applied, with derived fields filled in."
    )
    lots: List[Lot] = Field(
        default_factory=list,
        description="The stock's lots after the new events were applied."
    )
    stock: Stock = Field(..., description="The stock with split factor and cash fields brought up to date.")
    errored_events: List[ErroredEvent] = Field(
        default_factory=list,
        description="Events that failed validation or processing, with error reasons."
    )
    warnings: List[EngineWarning] = Field(
        default_factory=list,
        description="Non-fatal diagnostics raised while processing."
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "processed_events": [
                    {
                        "event_id": "buy_001",
                        "stock_id": "AAPL",
                        "event_type": "BUY",
                        "event_date": "2024-01-10",
                        "price": "100",
                        "investment": "1000",
                        "allocation": "SPLIT",
                        "quantity": "10.00000",
                        "swing_shares": "5.00000",
                        "hold_shares": "5.00000",
                        "drop_buy_target": "95.00",
                        "take_profit_target": "110.0000"
                    }
                ],
                "errored_events": [
                    {
                        "event_id": "sell_002",
                        "error_reason": "Sell quantity 8.00000 exceeds remaining shares 5.00000 of lot 7f3a"
                    }
                ],
                "warnings": []
            }
        }
    )
