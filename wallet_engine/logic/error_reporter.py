# wallet_engine/logic/error_reporter.py

from wallet_engine.core.models.diagnostics import EngineWarning
from wallet_engine.core.models.response import ErroredEvent


class ErrorReporter:
    """
    Collects per-event processing errors and non-fatal warnings for a batch.
    """
    def __init__(self):
        self._errored_events: dict[str, ErroredEvent] = {}
        self._warnings: list[EngineWarning] = []

    def add_error(self, event_id: str, error_reason: str):
        """
        Adds an error for a specific event. A second, different reason for the
        same event is appended to the first.
        """
        if event_id in self._errored_events:
            existing_reason = self._errored_events[event_id].error_reason
            if error_reason not in existing_reason:
                self._errored_events[event_id].error_reason += f"; {error_reason}"
        else:
            self._errored_events[event_id] = ErroredEvent(
                event_id=event_id,
                error_reason=error_reason
            )

    def add_warning(self, warning: EngineWarning):
        self._warnings.append(warning)

    def get_errors(self) -> list[ErroredEvent]:
        return list(self._errored_events.values())

    def get_warnings(self) -> list[EngineWarning]:
        return list(self._warnings)

    def has_errors(self) -> bool:
        return bool(self._errored_events)

    def has_errors_for(self, event_id: str) -> bool:
        return event_id in self._errored_events

    def clear(self):
        """
        Clears all collected errors and warnings.
        """
        self._errored_events = {}
        self._warnings = []
