# wallet_engine/core/models/lot.py

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, condecimal, ConfigDict

from wallet_engine.core.enums.strategy import Strategy


class Lot(BaseModel):
    """
    A cost-basis bucket ("wallet") for shares bought at one price under one strategy.
    remaining_shares always equals total_shares_qty - shares_sold.
    """
    lot_id: str = Field(..., description="Unique identifier for the lot")
    stock_id: str = Field(..., description="Stock the lot belongs to")
    strategy: Strategy = Field(..., description="SWING or HOLD")
    buy_price: condecimal(gt=0) = Field(..., description="Per-share buy price")
    total_shares_qty: condecimal(ge=0) = Field(default=Decimal(0), description="Shares ever bought into this lot")
    total_investment: condecimal(ge=0) = Field(default=Decimal(0), description="Currency ever allocated to this lot")
    shares_sold: condecimal(ge=0) = Field(default=Decimal(0), description="Shares sold out of this lot")
    remaining_shares: condecimal(ge=0) = Field(default=Decimal(0), description="Shares still held")
    realized_pl: condecimal() = Field(default=Decimal(0), description="Realized profit/loss of all sales from this lot")
    realized_pl_percent: Optional[condecimal()] = Field(default=Decimal(0), description="Realized P/L over the sold shares' cost basis")
    tp_value: Optional[condecimal()] = Field(None, description="Commission-adjusted take-profit price (4 dp)")
    tp_percent: Optional[condecimal()] = Field(None, description="Take-profit percent the target was computed from")
    sell_txn_count: int = Field(default=0, ge=0, description="Number of SELL events recorded against the lot")
    applied_split_ids: list[str] = Field(default_factory=list, description="STOCK_SPLIT event ids already applied")
    version: int = Field(default=0, ge=0, description="Incremented on every mutation")

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
    )

    @property
    def is_committed(self) -> bool:
        """True once any sale was recorded; price and strategy are then frozen."""
        return self.shares_sold > 0 or self.sell_txn_count > 0

    @property
    def is_open(self) -> bool:
        return self.remaining_shares > 0

    @property
    def investment_per_share(self) -> Decimal:
        if self.total_shares_qty <= 0:
            return Decimal(0)
        return self.total_investment / self.total_shares_qty
