# wallet_engine/core/exceptions.py

"""Exceptions raised by the lot engine.

Everything derives from ``WalletEngineError``, itself a ``ValueError``, so callers
that already guard engine calls with ``except ValueError`` keep working.
"""

from decimal import Decimal
from typing import Optional


class WalletEngineError(ValueError):
    """Base engine error."""

    def __init__(self, message: str, http_status: int = 422) -> None:
        self.message = message
        self.http_status = http_status
        super().__init__(message)


class LedgerValidationError(WalletEngineError):
    """Input rejected before any lot was touched."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        self.field = field
        super().__init__(f"{field}: {message}" if field else message, 422)


class OverdrawnLot(WalletEngineError):
    def __init__(self, lot_id: str, requested: Decimal, remaining: Decimal) -> None:
        self.lot_id = lot_id
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Sell quantity {requested} exceeds remaining shares {remaining} of lot {lot_id}",
            422,
        )


class CommittedLotConflict(WalletEngineError):
    """The lot has recorded sales, so its price and strategy are frozen."""

    def __init__(self, lot_id: str, detail: str = "") -> None:
        self.lot_id = lot_id
        message = (
            f"Lot {lot_id} has recorded sales and cannot be changed in place. "
            "Delete the related Sell events first, then edit the Buy."
        )
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message, 409)


class LotNotFound(WalletEngineError):
    def __init__(self, lot_id: str) -> None:
        self.lot_id = lot_id
        super().__init__(f"Lot not found: {lot_id}", 404)


class StockNotFound(WalletEngineError):
    def __init__(self, stock_id: str) -> None:
        self.stock_id = stock_id
        super().__init__(f"Stock not found: {stock_id}", 404)


class EventNotFound(WalletEngineError):
    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(f"Ledger event not found: {event_id}", 404)


class StoreWriteError(WalletEngineError):
    """The store rejected a write with field-level errors."""

    def __init__(self, operation: str, errors: list) -> None:
        self.operation = operation
        self.errors = errors
        reasons = "; ".join(f"{e.field}: {e.message}" for e in errors) or "unknown error"
        super().__init__(f"Store rejected {operation}: {reasons}", 502)


class UpstreamUnavailable(WalletEngineError):
    """The store or price feed could not be reached. Retrying is the caller's call."""

    def __init__(self, source: str, reason: str = "") -> None:
        self.source = source
        super().__init__(f"{source} unavailable" + (f": {reason}" if reason else ""), 503)
