"""Database exceptions with HTTP status codes for store failures."""

from fastapi import status
from enum import Enum, auto
from typing import Optional, Dict, Any

from economy.core.exceptions import EconomyException


class DatabaseErrorCode(Enum):
    """Classification of store failures."""

    CONNECTION_REFUSED = auto()
    CONNECTION_LOST = auto()
    CONNECTION_TIMEOUT = auto()
    INSUFFICIENT_RESOURCES = auto()
    INTEGRITY_ERROR = auto()
    DATA_ERROR = auto()
    UNKNOWN_ERROR = auto()


class DatabaseException(EconomyException):
    """
    Base exception for database-related errors.

    Subclasses only override the class attributes. A ``retry_after`` marks
    the failure as transient: the response is a 503 with a ``Retry-After``
    header. ``error_details`` are kept for logs and never sent to clients.
    """

    default_detail = "A database error occurred"
    default_status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = DatabaseErrorCode.UNKNOWN_ERROR
    retry_after: Optional[int] = None

    def __init__(
        self,
        detail: Optional[str] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, Any]] = None,
        retry_after: Optional[int] = None,
        error_details: Optional[Dict[str, Any]] = None
    ):
        self.error_details = error_details or {}
        status_code = status_code or self.default_status_code
        retry_after = retry_after or self.retry_after

        if status_code == status.HTTP_503_SERVICE_UNAVAILABLE and retry_after:
            headers = dict(headers or {})
            headers['Retry-After'] = str(retry_after)

        super().__init__(
            detail={
                "detail": detail or self.default_detail,
                "error_code": self.error_code.name
            },
            status_code=status_code,
            headers=headers,
            context={"error_type": "DatabaseError", **self.error_details}
        )

    @classmethod
    def is_transient(cls) -> bool:
        return cls.retry_after is not None


class ConnectionRefusedError(DatabaseException):
    """The database server refuses connections."""

    default_detail = "Database connection refused"
    error_code = DatabaseErrorCode.CONNECTION_REFUSED
    retry_after = 30


class ConnectionLostError(DatabaseException):
    """An established database connection was lost."""

    default_detail = "Database connection lost"
    error_code = DatabaseErrorCode.CONNECTION_LOST
    retry_after = 10


class ConnectionTimeoutError(DatabaseException):
    """A connection attempt or a lock wait timed out."""

    default_detail = "Database connection timed out"
    error_code = DatabaseErrorCode.CONNECTION_TIMEOUT
    retry_after = 20


class InsufficientResourcesError(DatabaseException):
    """The database server ran out of connections, memory or disk."""

    default_detail = "Database server has insufficient resources"
    error_code = DatabaseErrorCode.INSUFFICIENT_RESOURCES
    retry_after = 60


class IntegrityError(DatabaseException):
    default_detail = "Database integrity constraint violated"
    default_status_code = status.HTTP_409_CONFLICT
    error_code = DatabaseErrorCode.INTEGRITY_ERROR


class DataError(DatabaseException):
    default_detail = "Invalid data for database operation"
    default_status_code = status.HTTP_400_BAD_REQUEST
    error_code = DatabaseErrorCode.DATA_ERROR
