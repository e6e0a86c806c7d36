"""FastAPI application entry point for the Economy Service."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from economy.core.config import settings, validate_internal_api_key, validate_economy_config
from economy.core.error_handlers import register_exception_handlers
from economy.log.logging import logger, InterceptHandler
from economy.middleware.rate_limit import setup_rate_limiting
from economy.middleware.request_context import setup_request_context_middleware
from economy.routers.credit_router import router as credit_router
from economy.routers.generation_router import router as generation_router
from economy.routers.healthcheck_router import router as healthcheck_router
from economy.routers.points_router import router as points_router
from economy.routers.referral_router import router as referral_router
from economy.routers.vip_router import router as vip_router

# Route standard logging (uvicorn, sqlalchemy) through loguru
logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def _log_validation(component: str, valid: bool, details: dict) -> None:
    if not valid:
        logger.warning(
            f"{component} configuration is invalid or incomplete",
            event_type="startup_warning",
            component=component,
            issues=details["issues"]
        )
    else:
        logger.info(
            f"{component} configuration validated successfully",
            event_type="startup_info",
            component=component,
            warnings=details.get("warnings", [])
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting application", status="starting", event_type="service_startup")

    _log_validation("internal_service_auth", *validate_internal_api_key())
    _log_validation("economy", *validate_economy_config())

    logger.info("Application startup complete", status="running", event_type="service_ready",
                business_timezone=settings.BUSINESS_TIMEZONE)
    yield
    logger.info("Application shutdown complete", status="stopped", event_type="service_shutdown_complete")


tags_metadata = [
    {"name": "credits", "description": "Credit balance, consumption, recharge and redeem codes."},
    {"name": "points", "description": "Points balance, daily check-in and points-to-credits exchange."},
    {"name": "generation", "description": "Daily generation quota per user or client IP."},
    {"name": "vip", "description": "VIP plans, orders and admin review."},
    {"name": "referral", "description": "Referral codes, binding and rewards."},
    {"name": "Health", "description": "Service health check endpoints."},
]

app = FastAPI(
    title="Economy Service API",
    description="""
## Credits, points and quota service

* **Credits** - generation credits ledger with consume/recharge and redeem codes
* **Points** - daily check-in streaks and exchange of points for credits
* **Generation quota** - per-day limits by tier (anonymous, free, VIP, admin)
* **VIP** - subscription orders with stacked expiry
* **Referral** - invitation codes and rewards

User endpoints take a bearer token from the identity provider:
```
Authorization: Bearer <access_token>
```

Internal endpoints take the service key:
```
api-key: <internal_api_key>
```
""",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=tags_metadata,
)

setup_request_context_middleware(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.cors_methods_list,
    allow_headers=settings.cors_headers_list,
    max_age=settings.CORS_MAX_AGE,
    expose_headers=["X-Request-ID", "Retry-After"],
)
logger.info(
    "CORS configured",
    event_type="middleware_setup",
    origins=settings.cors_origins_list,
    methods=settings.cors_methods_list,
    credentials=settings.CORS_ALLOW_CREDENTIALS
)

setup_rate_limiting(app)
register_exception_handlers(app)


@app.get("/")
async def root():
    logger.debug("Root endpoint accessed", event_type="endpoint_access", endpoint="root", method="GET")
    return {"message": "economyService is up and running!"}


app.include_router(credit_router)
app.include_router(points_router)
app.include_router(generation_router)
app.include_router(vip_router)
app.include_router(referral_router)
app.include_router(healthcheck_router)

logger.info("API routes registered", event_type="routes_registered")
