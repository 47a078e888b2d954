# wallet_engine/api/v1/wallets.py

from datetime import datetime, timezone
from fastapi import APIRouter, Depends

from wallet_engine.core.models.request import PortfolioSummaryRequest, WalletProcessingRequest
from wallet_engine.core.models.response import WalletProcessingResponse
from wallet_engine.core.models.views import PortfolioSummary
from wallet_engine.logic.error_reporter import ErrorReporter
from wallet_engine.logic.parser import LedgerEventParser
from wallet_engine.logic.sorter import LedgerEventSorter
from wallet_engine.services.ledger_processor import LedgerProcessor
from wallet_engine.services.summary_service import SummaryBuilder

router = APIRouter()


def get_ledger_processor() -> LedgerProcessor:
    """
    Provides a new LedgerProcessor per request, sharing one ErrorReporter
    between the parser and the processor.
    """
    error_reporter = ErrorReporter()
    return LedgerProcessor(
        parser=LedgerEventParser(error_reporter=error_reporter),
        sorter=LedgerEventSorter(),
        error_reporter=error_reporter
    )


def get_summary_builder() -> SummaryBuilder:
    return SummaryBuilder()


@router.post(
    "/wallets/process",
    response_model=WalletProcessingResponse,
    summary="Apply new ledger events to a stock's lots",
    description="Accepts a stock, its current lots and existing events plus new events; "
                "applies the new events in chronological order and returns the derived "
                "event fields, the updated lots and stock, errored events and warnings."
)
async def process_wallet_events_endpoint(
    request: WalletProcessingRequest,
    processor: LedgerProcessor = Depends(get_ledger_processor)
) -> WalletProcessingResponse:
    return processor.process_events(
        stock=request.stock,
        existing_lots=request.existing_lots,
        existing_events_raw=request.existing_events,
        new_events_raw=request.new_events
    )


@router.post(
    "/wallets/summary",
    response_model=PortfolioSummary,
    summary="Compute P/L, budget and signal views",
    description="Computes per-stock realized and unrealized P/L, tied-up and risk investment, "
                "budget figures and signals, plus portfolio totals. Stocks without a quote "
                "are reported with price_available=false."
)
async def portfolio_summary_endpoint(
    request: PortfolioSummaryRequest,
    builder: SummaryBuilder = Depends(get_summary_builder)
) -> PortfolioSummary:
    quotes = {quote.symbol: quote for quote in request.prices}
    return builder.portfolio_summary(
        stocks=request.stocks,
        lots=request.lots,
        events=request.events,
        quotes=quotes,
        today=datetime.now(timezone.utc).date(),
        include_archived=request.include_archived
    )
