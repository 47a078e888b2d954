# wallet_engine/core/models/price.py

import datetime
from typing import Optional
from pydantic import BaseModel, Field, condecimal


class HistoricalClose(BaseModel):
    """One daily close from the price feed."""
    date: datetime.date
    close: condecimal(gt=0)


class PriceQuote(BaseModel):
    """
    Price-feed output for one symbol. current_price is None when the feed
    has no usable quote; it is never coerced to zero.
    """
    symbol: str = Field(..., description="Ticker the quote belongs to")
    current_price: Optional[condecimal(gt=0)] = Field(None, description="Latest price, or None when unavailable")
    historical_closes: list[HistoricalClose] = Field(default_factory=list, description="Bounded window of daily closes")

    def recent_closes(self, count: int) -> list[HistoricalClose]:
        """The `count` most recent closes, newest first."""
        return sorted(self.historical_closes, key=lambda c: c.date, reverse=True)[:count]
