# wallet_engine/services/ledger_processor.py

import logging
from typing import Any

from wallet_engine.core.models.lot import Lot
from wallet_engine.core.models.response import WalletProcessingResponse
from wallet_engine.core.models.stock import Stock
from wallet_engine.logic.cash_flow import replay_cash_flow, with_cash_flow
from wallet_engine.logic.error_reporter import ErrorReporter
from wallet_engine.logic.event_calculator import EventCalculator
from wallet_engine.logic.lot_pool import LotPool
from wallet_engine.logic.parser import LedgerEventParser
from wallet_engine.logic.sorter import LedgerEventSorter
from wallet_engine.logic.split_adjuster import SplitAdjuster

logger = logging.getLogger(__name__)


class LedgerProcessor:
    """
    Applies a batch of new ledger events to a stock's existing lots without a store.
    It combines parsing, sorting, lot accounting, cash-flow replay and error reporting.
    """
    def __init__(
        self,
        parser: LedgerEventParser,
        sorter: LedgerEventSorter,
        error_reporter: ErrorReporter
    ):
        self._parser = parser
        self._sorter = sorter
        self._error_reporter = error_reporter

    def process_events(
        self,
        stock: Stock,
        existing_lots: list[Lot],
        existing_events_raw: list[dict[str, Any]],
        new_events_raw: list[dict[str, Any]]
    ) -> WalletProcessingResponse:
        """
        Existing events are only used for ordering, split history and cash flow;
        their effect is already part of existing_lots. New events are applied in
        chronological order; a rejected event leaves the lots as they were.
        """
        logger.info(f"Processing events for {stock.symbol}. Existing: {len(existing_events_raw)}, New: {len(new_events_raw)}")

        parsed_existing = self._parser.parse_events(existing_events_raw)
        parsed_new = self._parser.parse_events(new_events_raw)
        new_event_ids = {e.event_id for e in parsed_new}

        sortable_existing = [e for e in parsed_existing if not e.error_reason]
        sortable_new = [e for e in parsed_new if not self._error_reporter.has_errors_for(e.event_id)]
        sorted_events = self._sorter.sort_events(existing_events=sortable_existing, new_events=sortable_new)
        logger.debug(f"Sorted {len(sorted_events)} events (combined existing and new).")

        stock = stock.model_copy()
        pool = LotPool(existing_lots)
        calculator = EventCalculator(pool, self._error_reporter, applied_splits=SplitAdjuster.from_events(sortable_existing))

        processed = []
        for event in sorted_events:
            if event.event_id not in new_event_ids:
                continue
            if event.stock_id != stock.stock_id:
                self._error_reporter.add_error(event.event_id, f"event belongs to stock {event.stock_id}, not {stock.stock_id}")
                continue
            if calculator.process_event(event, stock):
                processed.append(event)

        ledger = [e for e in sorted_events if e.event_id not in new_event_ids] + processed
        stock = with_cash_flow(stock, replay_cash_flow(ledger))

        errors = self._error_reporter.get_errors()
        warnings = self._error_reporter.get_warnings()
        if self._error_reporter.has_errors():
            logger.warning(f"Rejected {len(errors)} event(s) of {stock.symbol}: {', '.join(e.event_id for e in errors)}")
        logger.info(f"Finished processing. Applied {len(processed)} new events, {len(errors)} errors reported.")

        self._error_reporter.clear()
        return WalletProcessingResponse(
            processed_events=processed,
            lots=pool.all_lots(),
            stock=stock,
            errored_events=errors,
            warnings=warnings,
        )
