"""Base exceptions carrying an HTTP status for the boundary handlers."""

from typing import Any, Dict, Optional

from fastapi import status


class EconomyException(Exception):
    """
    Base exception for errors that map directly to an HTTP response.

    Attributes:
        status_code: HTTP status returned to the caller.
        detail: Response detail (string or dict).
        headers: Optional response headers.
        context: Extra fields for logging (never returned to the caller).
    """

    def __init__(
        self,
        detail: Any,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        headers: Optional[Dict[str, str]] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail
        self.headers = headers
        self.context = context or {}

    @property
    def error_detail(self) -> Any:
        if isinstance(self.detail, dict):
            return self.detail.get("detail", self.detail)
        return self.detail


class LedgerStoreError(EconomyException):
    """Raised when a ledger transaction fails in the store and has been rolled back."""

    def __init__(self, operation: str, original: Optional[Exception] = None):
        super().__init__(
            detail="The operation could not be completed. Please try again later.",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            context={
                "error_type": "StoreError",
                "operation": operation,
                "original_error": str(original) if original else None,
            }
        )
        self.operation = operation
        self.original = original
