"""Result types shared by every engine."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class FailureReason(str, Enum):
    """Why a business operation did not apply."""
    INVALID_INPUT = "INVALID_INPUT"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    INSUFFICIENT_POINTS = "INSUFFICIENT_POINTS"
    ALREADY_DONE = "ALREADY_DONE"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    IDENTITY_UNRESOLVED = "IDENTITY_UNRESOLVED"
    FORBIDDEN = "FORBIDDEN"
    UNAVAILABLE = "UNAVAILABLE"
    INVALID_STATE = "INVALID_STATE"


class OperationResult(BaseModel):
    """
    Discriminated outcome of an engine operation.

    ``success`` is the discriminator; on failure ``reason`` says why and no
    state has changed.
    """
    success: bool
    reason: Optional[FailureReason] = None
    message: str = ""

    @classmethod
    def failure(cls, reason: FailureReason, message: str, **data):
        return cls(success=False, reason=reason, message=message, **data)
