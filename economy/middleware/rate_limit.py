"""Per-client HTTP request throttling using SlowAPI.

This guards the API as a whole and is unrelated to the daily generation
quota kept in the database.
"""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from fastapi import Request, FastAPI
from starlette.responses import JSONResponse

from economy.core.config import settings
from economy.middleware.request_context import get_client_ip
from economy.log.logging import logger

INTERNAL_BYPASS_KEY = "internal-service-bypass"


def get_request_identifier(request: Request) -> str:
    """
    Throttling key: internal callers (valid ``api-key`` header) share one
    bypass key, everyone else is keyed by client IP.
    """
    api_key = request.headers.get("api-key")
    if api_key and settings.INTERNAL_API_KEY and api_key == settings.INTERNAL_API_KEY:
        return INTERNAL_BYPASS_KEY
    return get_client_ip(request) or "unknown"


limiter = Limiter(
    key_func=get_request_identifier,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "Rate limit exceeded",
        event_type="rate_limit_exceeded",
        client_ip=get_client_ip(request),
        path=request.url.path,
        limit=str(exc.detail),
    )
    retry_after = getattr(exc, "retry_after", 60)
    return JSONResponse(
        status_code=429,
        content={
            "error": "RATE_LIMIT_EXCEEDED",
            "message": "Too many requests. Please slow down.",
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)}
    )


def setup_rate_limiting(app: FastAPI) -> None:
    """Attach the limiter, its 429 handler and the middleware to ``app``."""
    if not settings.RATE_LIMIT_ENABLED:
        logger.info("HTTP rate limiting is disabled", event_type="rate_limit_disabled")
        return

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    logger.info(
        "HTTP rate limiting configured",
        event_type="rate_limit_configured",
        default_limit=settings.RATE_LIMIT_DEFAULT,
        storage=settings.RATE_LIMIT_STORAGE_URI,
    )
