# wallet_engine/logic/parser.py

import logging
from typing import Any
from pydantic import ValidationError, TypeAdapter

from wallet_engine.core.models.ledger_event import LedgerEvent
from wallet_engine.logic.error_reporter import ErrorReporter

logger = logging.getLogger(__name__)

class LedgerEventParser:
    """
    Parses raw event dictionaries into validated LedgerEvent objects.
    All parsing errors are reported to the shared ErrorReporter.
    """
    def __init__(self, error_reporter: ErrorReporter):
        self._single_event_adapter = TypeAdapter(LedgerEvent)
        self._error_reporter = error_reporter

    def parse_events(self, raw_events_data: list[dict[str, Any]]) -> list[LedgerEvent]:
        """
        Parses a list of raw event dictionaries.
        An event that fails validation is still returned, as an unvalidated stub
        carrying error_reason, so callers can filter it out by that field.
        """
        logger.debug(f"LedgerEventParser: parsing {len(raw_events_data)} raw event(s).")
        parsed_events: list[LedgerEvent] = []

        for raw_event_data in raw_events_data:
            event_id = str(raw_event_data.get("event_id", "UNKNOWN_ID_BEFORE_PARSE"))
            try:
                parsed_events.append(self._single_event_adapter.validate_python(raw_event_data))
            except ValidationError as e:
                error_messages = "; ".join(
                    f"{'.'.join(str(part) for part in err['loc']) or 'event'}: {err['msg']}"
                    for err in e.errors()
                )
                error_reason = f"Validation error: {error_messages}"
                logger.warning(f"LedgerEventParser: event {event_id} rejected. {error_reason}")

                stub = LedgerEvent.model_construct(
                    event_id=event_id,
                    stock_id=raw_event_data.get("stock_id", "UNKNOWN"),
                    event_type=raw_event_data.get("event_type", "UNKNOWN"),
                    event_date=raw_event_data.get("event_date"),
                    error_reason=error_reason,
                )
                parsed_events.append(stub)
                self._error_reporter.add_error(event_id, error_reason)

        return parsed_events
