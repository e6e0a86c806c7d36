import asyncio
import random
import time
from typing import AsyncGenerator, Optional, Dict, Any

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncEngine
from sqlalchemy.exc import SQLAlchemyError

from economy.core.config import settings
from economy.log.logging import logger
from economy.core.db_utils import (
    retry_exceptions,
    classify_exception,
    healthcheck_database,
)


def engine_options(database_url: str) -> Dict[str, Any]:
    """
    Engine keyword arguments for the given URL.

    SQLite is only used for local runs and tests: it gets a lock wait timeout
    instead of pool sizing so concurrent writers queue rather than fail.
    """
    if database_url.startswith("sqlite"):
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


def build_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, echo=False, **engine_options(database_url))


database_url = settings.database_url

logger.info(
    "Database initialization",
    event_type="database_init",
    dialect=database_url.split(":", 1)[0],
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
)

engine = build_engine(database_url)

AsyncSessionLocal = async_sessionmaker(
    bind=engine, expire_on_commit=False, autoflush=False
)

# Connection failure tracking for degraded-mode reporting
_last_connection_error: Optional[float] = None
_connection_error_count: int = 0
_in_degraded_mode: bool = False
MAX_ERROR_COUNT_BEFORE_DEGRADATION = 3
ERROR_RESET_PERIOD = 300  # seconds


def _record_connection_error(e: Exception, attempts: int) -> None:
    global _in_degraded_mode, _last_connection_error

    _last_connection_error = time.time()

    if not _in_degraded_mode and _connection_error_count >= MAX_ERROR_COUNT_BEFORE_DEGRADATION:
        _in_degraded_mode = True
        logger.warning(
            "Entering database degraded mode after multiple connection failures",
            event_type="db_degraded_mode_enter",
            error_count=_connection_error_count
        )

    exception_class, error_details = classify_exception(e)
    logger.error(f"Database session failed after {attempts} attempts",
        event_type="db_session_error",
        attempts=attempts,
        in_degraded_mode=_in_degraded_mode,
        error_count=_connection_error_count,
        **error_details
    )


def _maybe_leave_degraded_mode() -> None:
    global _last_connection_error, _connection_error_count, _in_degraded_mode

    if _last_connection_error is None:
        return
    if time.time() - _last_connection_error > ERROR_RESET_PERIOD:
        _connection_error_count = 0
        _last_connection_error = None
        if _in_degraded_mode:
            _in_degraded_mode = False
            logger.info(
                "Exiting database degraded mode after successful connection",
                event_type="db_degraded_mode_exit"
            )


async def get_db() -> AsyncGenerator:
    """Dependency yielding a database session, retrying transient connection errors."""
    global _connection_error_count

    max_retries = 3
    delay = 0.5
    max_delay = 5.0
    backoff_factor = 2.0

    for attempt in range(max_retries + 1):
        session = AsyncSessionLocal()
        try:
            # Open the connection now so failures surface here, not in the handler
            await session.connection()
            break
        except SQLAlchemyError as e:
            await session.close()
            _connection_error_count += 1
            exception_class, error_details = classify_exception(e)

            should_retry = any(
                isinstance(e, retry_exc) or exception_class == retry_exc
                for retry_exc in retry_exceptions
            )
            if not should_retry or attempt >= max_retries:
                _record_connection_error(e, attempt + 1)
                raise

            next_delay = min(delay * backoff_factor * random.uniform(0.8, 1.2), max_delay)
            logger.warning(
                f"Database session attempt {attempt + 1}/{max_retries} failed, retrying in {next_delay:.2f}s",
                event_type="db_operation_retry",
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=next_delay,
                error_type=type(e).__name__,
            )
            await asyncio.sleep(next_delay)
            delay = next_delay

    _maybe_leave_degraded_mode()
    logger.debug("Database session created", event_type="db_session_created")
    try:
        yield session
    finally:
        await session.close()
        logger.debug("Database session closed", event_type="db_session_closed")


async def check_db_health() -> Dict[str, Any]:
    """Check database health and return status information."""
    try:
        async with AsyncSessionLocal() as session:
            health = await healthcheck_database(session)
    except Exception as e:
        exception_class, error_details = classify_exception(e)
        health = {
            "status": "unhealthy",
            "error": str(e),
            "error_type": exception_class.__name__,
        }
    health["in_degraded_mode"] = _in_degraded_mode
    health["error_count"] = _connection_error_count
    return health
