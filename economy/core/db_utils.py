"""Database utilities: error classification, health checks and dialect-aware upserts.

Ledger writes rely on the store's "insert or update on conflict" primitive. The
PostgreSQL and SQLite dialects both expose it through their own ``insert``
construct, so ``dialect_insert`` picks the right one for the session's bind.
"""

import time
from typing import Dict, Any, Type, Tuple

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError, OperationalError
from sqlalchemy.exc import IntegrityError as SAIntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import text

from economy.core.db_exceptions import (
    ConnectionRefusedError,
    ConnectionLostError,
    ConnectionTimeoutError,
    InsufficientResourcesError,
    IntegrityError,
    DataError,
    DatabaseException,
)
from economy.log.logging import logger

# Exceptions worth retrying when opening a session
retry_exceptions = [
    ConnectionRefusedError,
    ConnectionLostError,
    ConnectionTimeoutError,
    InsufficientResourcesError,
    OperationalError
]

# PostgreSQL SQLSTATE codes mapped to our error types
PG_ERROR_CODE_MAP = {
    '08001': ConnectionRefusedError,
    '08006': ConnectionLostError,
    '08P01': ConnectionLostError,
    '53000': InsufficientResourcesError,
    '53100': InsufficientResourcesError,
    '53200': InsufficientResourcesError,
    '53300': InsufficientResourcesError,
    '23000': IntegrityError,
    '23502': IntegrityError,
    '23503': IntegrityError,
    '23505': IntegrityError,
    '23514': IntegrityError,
    '22000': DataError,
    '22003': DataError,
    '22007': DataError,
    '22P02': DataError,
    '40001': ConnectionTimeoutError,  # serialization failure
    '40P01': ConnectionTimeoutError,  # deadlock detected
    '55P03': ConnectionTimeoutError,  # lock not available
}


def classify_exception(
    exc: Exception
) -> Tuple[Type[DatabaseException], Dict[str, Any]]:
    """Classify a database exception to a more specific error type.

    Args:
        exc: The exception to classify

    Returns:
        Tuple containing the exception class and error details
    """
    error_details = {
        "original_error": str(exc),
        "error_type": type(exc).__name__
    }

    if isinstance(exc, SQLAlchemyError):
        orig = getattr(exc, "orig", None)
        pg_code = getattr(exc, "pgcode", None) or getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
        if pg_code:
            error_details["pg_code"] = pg_code
            return PG_ERROR_CODE_MAP.get(pg_code, DatabaseException), error_details

        if isinstance(exc, SAIntegrityError):
            return IntegrityError, error_details

        if isinstance(exc, OperationalError):
            error_str = str(exc).lower()
            if "connection refused" in error_str:
                return ConnectionRefusedError, error_details
            elif "timeout" in error_str or "database is locked" in error_str:
                return ConnectionTimeoutError, error_details
            elif "lost connection" in error_str or "broken pipe" in error_str:
                return ConnectionLostError, error_details
            elif "too many connections" in error_str or "out of memory" in error_str:
                return InsufficientResourcesError, error_details

    error_str = str(exc).lower()
    if "connection refused" in error_str:
        return ConnectionRefusedError, error_details
    elif "timeout" in error_str:
        return ConnectionTimeoutError, error_details
    elif "connection" in error_str and ("reset" in error_str or "closed" in error_str):
        return ConnectionLostError, error_details

    return DatabaseException, error_details


def dialect_insert(session: AsyncSession, model):
    """
    Return an ``INSERT`` construct for ``model`` that supports ``on_conflict_*``.

    Args:
        session: Session whose bind decides the dialect
        model: Mapped class or table to insert into

    Raises:
        NotImplementedError: For dialects without an upsert construct
    """
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upsert is not supported for dialect {dialect}")


def is_unique_violation(exc: SQLAlchemyError) -> bool:
    """True when ``exc`` is a unique/primary key conflict."""
    if not isinstance(exc, SAIntegrityError):
        return False
    exception_class, details = classify_exception(exc)
    if details.get("pg_code"):
        return details["pg_code"] == "23505"
    return "unique" in str(exc).lower()


async def healthcheck_database(db_session) -> Dict[str, Any]:
    """Perform a health check on the database.

    Args:
        db_session: SQLAlchemy async session

    Returns:
        Dictionary with health check results
    """
    start_time = time.time()
    try:
        result = await db_session.execute(text("SELECT 1"))
        row = result.scalar()

        response_time = time.time() - start_time

        return {
            "status": "healthy" if row == 1 else "degraded",
            "response_time_ms": round(response_time * 1000, 2),
            "message": "Database connection successful"
        }
    except Exception as exc:
        exception_class, error_details = classify_exception(exc)
        elapsed_time = time.time() - start_time

        logger.error(
            "Database health check failed",
            event_type="db_healthcheck_failed",
            error_type=exception_class.__name__,
            response_time_ms=round(elapsed_time * 1000, 2),
            error_details=error_details
        )

        return {
            "status": "unhealthy",
            "response_time_ms": round(elapsed_time * 1000, 2),
            "error": str(exc),
            "error_type": exception_class.__name__,
        }
