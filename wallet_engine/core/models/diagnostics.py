# wallet_engine/core/models/diagnostics.py

from typing import Any, Optional
from pydantic import BaseModel, Field

from wallet_engine.core.enums.warning_code import WarningCode


class EngineWarning(BaseModel):
    """A non-fatal diagnostic attached to an engine result."""
    code: WarningCode = Field(..., description="Machine-readable warning code")
    message: str = Field(..., description="Human-readable description")
    event_id: Optional[str] = Field(None, description="Ledger event the warning relates to")


class OperationResult(BaseModel):
    """
    Result of a mutating service call: the primary payload plus zero or more warnings.
    """
    payload: Any = None
    warnings: list[EngineWarning] = Field(default_factory=list)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)

    def codes(self) -> list[WarningCode]:
        return [w.code for w in self.warnings]
