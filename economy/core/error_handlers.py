"""Error handlers with a uniform body and request_id tracking."""
from fastapi import Request, HTTPException
from fastapi.exceptions import RequestValidationError
from typing import Dict, Any

from sqlalchemy.exc import SQLAlchemyError
from economy.log.logging import logger
from economy.core.exceptions import EconomyException
from economy.core.responses import DecimalJSONResponse
from economy.core.db_exceptions import DatabaseException
from economy.middleware.request_context import get_request_id


def _build_error_response(
    error: str,
    message: str,
    details: Any = None
) -> Dict[str, Any]:
    """
    Every error body has the same shape:
    - error: Error type identifier (e.g. "ValidationError", "StoreError")
    - message: Human-readable error message
    - request_id: Request identifier for debugging, when known
    - details: Additional error details (optional)
    """
    response = {
        "error": error,
        "message": message
    }

    request_id = get_request_id()
    if request_id:
        response["request_id"] = request_id

    if details is not None:
        response["details"] = details

    return response


async def economy_exception_handler(request: Request, exc: EconomyException) -> DecimalJSONResponse:
    """Handle service exceptions, including ``LedgerStoreError``."""
    error_type = exc.context.get("error_type", "EconomyError")
    log_level = logger.error if exc.status_code >= 500 else logger.warning
    log_level(
        f'{error_type} on {request.url}: {exc.error_detail}',
        event_type='economy_error',
        error_type=error_type,
        status_code=exc.status_code,
        path=str(request.url),
        context=exc.context
    )
    return DecimalJSONResponse(
        status_code=exc.status_code,
        content=_build_error_response(error=error_type, message=str(exc.error_detail)),
        headers=exc.headers
    )


async def database_exception_handler(request: Request, exc: DatabaseException) -> DecimalJSONResponse:
    """Handle classified database exceptions with their status codes and retry hints."""
    logger.error(f'Database error on {request.url}',
                 event_type='db_api_error',
                 error_code=exc.error_code.name,
                 error_details=exc.error_details,
                 status_code=exc.status_code)
    return DecimalJSONResponse(
        status_code=exc.status_code,
        content=_build_error_response(
            error="DatabaseError",
            message=str(exc.error_detail),
            details={"error_code": exc.error_code.name}
        ),
        headers=exc.headers
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> DecimalJSONResponse:
    logger.warning(
        f'Validation error on {request.url}',
        event_type='validation_error',
        path=str(request.url),
        method=request.method,
        errors=exc.errors()
    )
    return DecimalJSONResponse(
        status_code=422,
        content=_build_error_response(
            error="ValidationError",
            message="Invalid request data",
            details=exc.errors()
        )
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> DecimalJSONResponse:
    """Handle HTTP exceptions, keeping dict details produced by the routers."""
    log_level = logger.warning if 400 <= exc.status_code < 500 else logger.error
    log_level(
        f'HTTP error on {request.url}',
        event_type='http_error',
        status_code=exc.status_code,
        path=str(request.url),
        method=request.method,
        detail=str(exc.detail)[:200]
    )

    if isinstance(exc.detail, dict) and "message" in exc.detail:
        response = exc.detail.copy()
        request_id = get_request_id()
        if request_id:
            response["request_id"] = request_id
        return DecimalJSONResponse(
            status_code=exc.status_code,
            content=response,
            headers=getattr(exc, "headers", None)
        )

    error_type_map = {
        400: "BadRequest",
        401: "Unauthorized",
        402: "PaymentRequired",
        403: "Forbidden",
        404: "NotFound",
        405: "MethodNotAllowed",
        409: "Conflict",
        410: "Gone",
        429: "RateLimitExceeded",
    }
    return DecimalJSONResponse(
        status_code=exc.status_code,
        content=_build_error_response(
            error=error_type_map.get(exc.status_code, "HTTPError"),
            message=str(exc.detail)
        ),
        headers=getattr(exc, "headers", None)
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> DecimalJSONResponse:
    logger.error(
        f'SQLAlchemy error on {request.url}',
        event_type='db_sqlalchemy_error',
        error_type=type(exc).__name__,
        path=str(request.url),
        method=request.method,
        exc_info=True
    )
    return DecimalJSONResponse(
        status_code=500,
        content=_build_error_response(
            error="StoreError",
            message="A database error occurred. Please try again later."
        )
    )


async def generic_exception_handler(request: Request, exc: Exception) -> DecimalJSONResponse:
    logger.error(
        f'Unhandled error on {request.url}',
        event_type='unhandled_error',
        error_type=type(exc).__name__,
        path=str(request.url),
        method=request.method,
        exc_info=True
    )
    return DecimalJSONResponse(
        status_code=500,
        content=_build_error_response(
            error="InternalServerError",
            message="An unexpected error occurred."
        )
    )


def register_exception_handlers(app) -> None:
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(DatabaseException, database_exception_handler)
    app.add_exception_handler(EconomyException, economy_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
