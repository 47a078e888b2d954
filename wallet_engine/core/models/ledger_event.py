# wallet_engine/core/models/ledger_event.py

from datetime import date
from typing import Optional
from pydantic import BaseModel, Field, condecimal, ConfigDict, model_validator

from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.enums.strategy import BuyAllocation, Strategy


class LedgerEvent(BaseModel):
    """
    An immutable record of something that happened to a stock.
    Required inputs depend on the event type; derived fields are filled in by the engine.
    """
    event_id: str = Field(..., description="Unique identifier for the ledger event")
    stock_id: str = Field(..., description="Stock the event belongs to")
    event_type: EventType = Field(..., description="BUY, SELL, DIVIDEND, STOCK_LENDING_PAYMENT or STOCK_SPLIT")
    event_date: date = Field(..., description="Date the event occurred (ISO format)")

    # --- Inputs
    price: Optional[condecimal(gt=0)] = Field(None, description="Per-share price for BUY and SELL")
    investment: Optional[condecimal(gt=0)] = Field(None, description="Total currency invested by a BUY")
    quantity: Optional[condecimal(gt=0)] = Field(None, description="Shares sold by a SELL; derived for a BUY")
    amount: Optional[condecimal(gt=0)] = Field(None, description="Cash received by a DIVIDEND or STOCK_LENDING_PAYMENT")
    split_multiplier: Optional[condecimal(gt=0)] = Field(None, description="New shares per old share for a STOCK_SPLIT")
    allocation: Optional[BuyAllocation] = Field(None, description="Strategy assignment of a BUY")
    lot_id: Optional[str] = Field(None, description="Lot drawn down by a SELL")
    strategy: Optional[Strategy] = Field(None, description="Strategy of the lot a SELL draws down")

    # --- Computed / Enriched Fields
    swing_shares: Optional[condecimal(ge=0)] = Field(None, description="Shares of a BUY allocated to Swing")
    hold_shares: Optional[condecimal(ge=0)] = Field(None, description="Shares of a BUY allocated to Hold")
    drop_buy_target: Optional[condecimal()] = Field(None, description="Commission-adjusted buy-the-dip price (2 dp)")
    take_profit_target: Optional[condecimal()] = Field(None, description="Commission-adjusted swing take-profit price (4 dp)")
    buy_price_at_sale: Optional[condecimal(ge=0)] = Field(None, description="Lot buy price when the SELL was recorded")
    txn_profit: Optional[condecimal()] = Field(None, description="Realized profit of a SELL")
    txn_profit_percent: Optional[condecimal()] = Field(None, description="Realized profit percent of a SELL")
    error_reason: Optional[str] = Field(None, description="Reason for event processing failure")

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
    )

    @model_validator(mode="after")
    def check_required_by_type(self):
        missing: list[str] = []
        if self.event_type == EventType.BUY:
            missing = [name for name in ("price", "investment") if getattr(self, name) is None]
        elif self.event_type == EventType.SELL:
            missing = [name for name in ("price", "quantity", "lot_id") if getattr(self, name) is None]
        elif self.event_type in (EventType.DIVIDEND, EventType.STOCK_LENDING_PAYMENT):
            missing = ["amount"] if self.amount is None else []
        elif self.event_type == EventType.STOCK_SPLIT:
            missing = ["split_multiplier"] if self.split_multiplier is None else []
        if missing:
            raise ValueError(f"{self.event_type.value} event requires {', '.join(missing)}")
        return self
