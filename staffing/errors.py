from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

__all__ = [
    "EngineError",
    "Outcome",
    "StaffingError",
    "RuleSetDocumentError",
    "NotFoundError",
]


class EngineError(Enum):
    """Failure kinds returned (never raised) by rule and draft operations."""

    INVALID_STEP_ORDER = "invalid_step_order"
    INVALID_INPUT = "invalid_input"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of an engine operation.

    Attributes:
        ok: Whether the operation was applied.
        error: The failure kind when ``ok`` is false.
        message: Human-readable detail for rejected operations.
    """

    ok: bool
    error: Optional[EngineError] = None
    message: str = ""

    @classmethod
    def success(cls) -> "Outcome":
        return cls(ok=True)

    @classmethod
    def invalid_input(cls, message: str) -> "Outcome":
        return cls(ok=False, error=EngineError.INVALID_INPUT, message=message)

    @classmethod
    def invalid_step(cls, message: str) -> "Outcome":
        return cls(ok=False, error=EngineError.INVALID_STEP_ORDER, message=message)

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "error": self.error.value if self.error else None,
            "message": self.message,
        }


class StaffingError(Exception):
    """Base class for integration-layer failures (storage, import, lookups)."""

    pass


class RuleSetDocumentError(StaffingError):
    """Raised when a rule document file cannot be read as a JSON object."""

    pass


class NotFoundError(StaffingError):
    """Raised when a stored record requested by id does not exist."""

    pass
