# wallet_engine/core/models/stock.py

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, condecimal, ConfigDict

class Stock(BaseModel):
    """
    A tradable instrument together with the per-stock parameters that drive
    buy allocation, target prices and budget.
    """
    stock_id: str = Field(..., description="Unique identifier for the stock record")
    symbol: str = Field(..., description="Ticker used as the price-feed lookup key")
    swing_hold_ratio: Optional[condecimal(ge=0, le=100)] = Field(None, description="Percent of each Buy allocated to Swing when split")
    pdp: Optional[condecimal(ge=0)] = Field(None, description="Price-drop percent for the buy-the-dip target")
    stp: Optional[condecimal(ge=0)] = Field(None, description="Swing take-profit percent")
    htp: Optional[condecimal(ge=0)] = Field(None, description="Hold take-profit percent")
    commission_percent: Optional[condecimal(ge=0)] = Field(None, description="Commission percent charged per trade")
    budget: Optional[condecimal(ge=0)] = Field(None, description="Annual risk budget")
    total_out_of_pocket: condecimal(ge=0) = Field(default=Decimal(0), description="Cumulative cash injected to fund buys")
    current_cash_balance: condecimal(ge=0) = Field(default=Decimal(0), description="Cash returned by sells and income, not yet reinvested")
    split_adjustment_factor: condecimal(gt=0) = Field(default=Decimal(1), description="Product of all split multipliers applied so far")
    is_archived: bool = Field(default=False, description="Soft-archive flag; stocks are never physically deleted")

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
    )
