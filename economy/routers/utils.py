"""Mapping engine results to HTTP responses."""

from typing import Dict, Optional

from fastapi import HTTPException, status

from economy.schemas.common import FailureReason, OperationResult

FAILURE_STATUS: Dict[FailureReason, int] = {
    FailureReason.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    FailureReason.IDENTITY_UNRESOLVED: status.HTTP_400_BAD_REQUEST,
    FailureReason.INSUFFICIENT_BALANCE: status.HTTP_402_PAYMENT_REQUIRED,
    FailureReason.INSUFFICIENT_POINTS: status.HTTP_402_PAYMENT_REQUIRED,
    FailureReason.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    FailureReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    FailureReason.ALREADY_DONE: status.HTTP_409_CONFLICT,
    FailureReason.INVALID_STATE: status.HTTP_409_CONFLICT,
    FailureReason.UNAVAILABLE: status.HTTP_410_GONE,
    FailureReason.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
}


def raise_for_failure(result: OperationResult, headers: Optional[Dict[str, str]] = None) -> OperationResult:
    """
    Return ``result`` unchanged when it succeeded, otherwise raise the matching HTTPException.

    The exception detail is ``{"error": <reason>, "message": ...}`` plus the
    result's non-empty data fields, e.g. the current balance.
    """
    if result.success:
        return result

    detail = {"error": result.reason.value if result.reason else "Error", "message": result.message}
    extra = result.model_dump(exclude={"success", "reason", "message"}, exclude_none=True, mode="json")
    if extra:
        detail["details"] = extra
    raise HTTPException(
        status_code=FAILURE_STATUS.get(result.reason, status.HTTP_400_BAD_REQUEST),
        detail=detail,
        headers=headers
    )
