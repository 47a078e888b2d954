# wallet_engine/services/summary_service.py

import logging
from datetime import date
from typing import Iterable, Optional

from wallet_engine.core.enums.event_type import EventType
from wallet_engine.core.enums.warning_code import WarningCode
from wallet_engine.core.models.diagnostics import EngineWarning
from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.core.models.lot import Lot
from wallet_engine.core.models.price import PriceQuote
from wallet_engine.core.models.stock import Stock
from wallet_engine.core.models.views import PortfolioSummary, StockSummary
from wallet_engine.logic.budget_risk import budget_view
from wallet_engine.logic.pl_aggregator import PLAggregator
from wallet_engine.logic.signals import evaluate_signals

logger = logging.getLogger(__name__)


class SummaryBuilder:
    """
    Assembles the read-only per-stock and portfolio views from stocks, lots,
    events and price quotes. Nothing here mutates its inputs.
    """
    def __init__(self, aggregator: Optional[PLAggregator] = None):
        self._aggregator = aggregator or PLAggregator()

    def stock_summary(
        self,
        stock: Stock,
        lots: Iterable[Lot],
        events: Iterable[LedgerEvent],
        quote: Optional[PriceQuote],
        today: date
    ) -> StockSummary:
        lots = [lot for lot in lots if lot.stock_id == stock.stock_id]
        events = [e for e in events if e.stock_id == stock.stock_id and not e.error_reason]
        price = quote.current_price if quote is not None else None

        realized = self._aggregator.realized(stock, events, lots)
        unrealized = self._aggregator.unrealized(lots, price)
        warnings = []
        if price is None:
            warnings.append(EngineWarning(
                code=WarningCode.PRICE_UNAVAILABLE,
                message=f"No price for {stock.symbol}; unrealized P/L omitted and all tied-up capital counted at risk",
            ))
        if realized.inconsistent:
            warnings.append(EngineWarning(
                code=WarningCode.PL_INCONSISTENCY,
                message=f"Realized P/L of {stock.symbol} includes sells without a lot or cost basis",
            ))
        return StockSummary(
            stock_id=stock.stock_id,
            symbol=stock.symbol,
            current_price=price,
            buy_count=sum(1 for e in events if e.event_type == EventType.BUY),
            sell_count=sum(1 for e in events if e.event_type == EventType.SELL),
            realized=realized,
            unrealized=unrealized,
            combined=self._aggregator.combined(realized, unrealized),
            budget=budget_view(stock, lots, price),
            signals=evaluate_signals(stock, lots, events, quote, today),
            warnings=warnings,
        )

    def portfolio_summary(
        self,
        stocks: Iterable[Stock],
        lots: Iterable[Lot],
        events: Iterable[LedgerEvent],
        quotes: dict[str, PriceQuote],
        today: date,
        include_archived: bool = False
    ) -> PortfolioSummary:
        stocks = [s for s in stocks if include_archived or not s.is_archived]
        lots, events = list(lots), list(events)
        summaries = [
            self.stock_summary(stock, lots, events, quotes.get(stock.symbol), today)
            for stock in stocks
        ]
        logger.info(f"Built portfolio summary over {len(summaries)} stock(s).")
        return self._aggregator.portfolio(summaries, stocks)
