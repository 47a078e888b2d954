# wallet_engine/core/models/views.py

from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from wallet_engine.core.models.diagnostics import EngineWarning


class PLBreakdown(BaseModel):
    """Profit/loss of one strategy (or of both combined) with its cost basis."""
    pl: Optional[Decimal] = Field(default=Decimal(0), description="Profit/loss in currency; None when not computable")
    cost_basis: Decimal = Field(default=Decimal(0), description="Cost basis the percent is measured against")
    pl_percent: Optional[Decimal] = Field(default=Decimal(0), description="pl / cost_basis * 100; None when undefined")


class RealizedPL(BaseModel):
    """Realized P/L of a stock's sells, per strategy, plus separately tracked income."""
    swing: PLBreakdown = Field(default_factory=PLBreakdown)
    hold: PLBreakdown = Field(default_factory=PLBreakdown)
    total: PLBreakdown = Field(default_factory=PLBreakdown)
    sell_count: int = 0
    dividend_income: Decimal = Decimal(0)
    lending_income: Decimal = Decimal(0)
    inconsistent: bool = Field(default=False, description="A sell had profit but no cost basis")

    @property
    def total_income(self) -> Decimal:
        return self.dividend_income + self.lending_income


class UnrealizedPL(BaseModel):
    """Mark-to-market P/L of open lots. pl fields are None when no price is available."""
    price_available: bool = True
    swing: PLBreakdown = Field(default_factory=PLBreakdown)
    hold: PLBreakdown = Field(default_factory=PLBreakdown)
    total: PLBreakdown = Field(default_factory=PLBreakdown)


class CombinedPL(BaseModel):
    swing: PLBreakdown = Field(default_factory=PLBreakdown)
    hold: PLBreakdown = Field(default_factory=PLBreakdown)
    total: PLBreakdown = Field(default_factory=PLBreakdown)
    partial_data: bool = Field(default=False, description="Unrealized part missing because no price was available")


class BudgetView(BaseModel):
    tied_up_investment: Decimal = Decimal(0)
    risk_investment: Decimal = Decimal(0)
    price_available: bool = True
    budget: Optional[Decimal] = None
    budget_used: Decimal = Decimal(0)
    budget_available: Optional[Decimal] = None
    market_value: Optional[Decimal] = None
    roic: Optional[Decimal] = None


class SignalView(BaseModel):
    """Price-based trading signals of one stock."""
    price_available: bool = True
    five_day_dip_percent: Optional[Decimal] = None
    last_buy_dip_percent: Optional[Decimal] = None
    percent_to_break_even: Optional[Decimal] = None
    percent_to_swing_tp: Optional[Decimal] = None
    percent_to_hold_tp: Optional[Decimal] = None
    drop_buy_target: Optional[Decimal] = None
    days_since_last_buy: Optional[int] = None
    swing_wallet_count: int = 0
    hold_wallet_count: int = 0
    buy_dip_active: bool = False
    swing_tp_active: bool = False
    hold_tp_active: bool = False


class StockSummary(BaseModel):
    stock_id: str
    symbol: str
    current_price: Optional[Decimal] = None
    buy_count: int = 0
    sell_count: int = 0
    realized: RealizedPL = Field(default_factory=RealizedPL)
    unrealized: UnrealizedPL = Field(default_factory=UnrealizedPL)
    combined: CombinedPL = Field(default_factory=CombinedPL)
    budget: BudgetView = Field(default_factory=BudgetView)
    signals: SignalView = Field(default_factory=SignalView)
    warnings: list[EngineWarning] = Field(default_factory=list, description="Missing price or inconsistent realized P/L")


class PortfolioSummary(BaseModel):
    """Plain sums of the per-stock summaries; no cross-stock normalization."""
    stocks: list[StockSummary] = Field(default_factory=list)
    realized_pl: Decimal = Decimal(0)
    unrealized_pl: Optional[Decimal] = Field(default=None, description="None when any stock has no price")
    combined_pl: Optional[Decimal] = None
    total_income: Decimal = Decimal(0)
    total_stock_pl_with_income: Optional[Decimal] = None
    tied_up_investment: Decimal = Decimal(0)
    risk_investment: Decimal = Decimal(0)
    market_value: Optional[Decimal] = None
    total_out_of_pocket: Decimal = Decimal(0)
    current_cash_balance: Decimal = Decimal(0)
    roic: Optional[Decimal] = None
    partial_data: bool = Field(default=False, description="At least one stock had no price")
