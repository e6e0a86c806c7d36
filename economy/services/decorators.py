"""Decorators shared by the engine services."""

import functools
from typing import Callable, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from economy.core.db_utils import classify_exception
from economy.core.exceptions import EconomyException, LedgerStoreError
from economy.log.logging import logger

T = TypeVar('T')


def db_error_handler(operation: str = None):
    """
    Roll back the service session when a store call fails.

    Transient SQLAlchemy errors (refused or lost connections, timeouts,
    exhausted resources) become their classified ``DatabaseException`` so the
    caller gets a 503 with ``Retry-After``; any other SQLAlchemy error becomes
    ``LedgerStoreError``. Anything else is rolled back and re-raised unchanged.

    Args:
        operation: Name used in logs, defaults to the wrapped function's name
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = operation or func.__name__

        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs) -> T:
            try:
                return await func(self, *args, **kwargs)
            except EconomyException:
                await self.db.rollback()
                raise
            except SQLAlchemyError as e:
                await self.db.rollback()
                exception_class, error_details = classify_exception(e)
                logger.exception(f"Store error in {name}: {error_details['original_error']}",
                                 event_type="ledger_store_error",
                                 operation=name,
                                 error_class=exception_class.__name__)
                if exception_class.is_transient():
                    raise exception_class(error_details=error_details) from e
                raise LedgerStoreError(name, e) from e
            except Exception:
                await self.db.rollback()
                raise
        return wrapper
    return decorator
