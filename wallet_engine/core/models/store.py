# wallet_engine/core/models/store.py

from typing import Optional
from pydantic import BaseModel, Field

from wallet_engine.core.models.ledger_event import LedgerEvent


class FieldError(BaseModel):
    """A field-level validation error returned by the store."""
    field: str = Field(..., description="Field the store rejected")
    message: str = Field(..., description="Why it was rejected")


class StoreResult(BaseModel):
    """Outcome of a store write: success, or the field-level errors that blocked it."""
    success: bool = True
    errors: list[FieldError] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> "StoreResult":
        return cls(success=True)

    @classmethod
    def failed(cls, field: str, message: str) -> "StoreResult":
        return cls(success=False, errors=[FieldError(field=field, message=message)])


class EventPage(BaseModel):
    """One page of a stock's ledger events."""
    events: list[LedgerEvent] = Field(default_factory=list)
    next_token: Optional[str] = Field(None, description="Pass back to fetch the next page; None on the last page")
