from fastapi import APIRouter
from fastapi.responses import JSONResponse

from economy.core.database import check_db_health
from economy.log.logging import logger

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    description="Service and database health",
    responses={
        200: {"description": "Database reachable"},
        503: {"description": "Database unhealthy"}
    }
)
async def health_check():
    """
    Report database reachability, response time and degraded-mode status.

    Returns 503 when the database check fails so load balancers stop routing
    traffic here.
    """
    db_health = await check_db_health()
    healthy = db_health.get("status") == "healthy"
    if not healthy:
        logger.warning("Health check reports an unhealthy database",
                       event_type="healthcheck_unhealthy",
                       db_status=db_health.get("status"))
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "healthy" if healthy else "unhealthy", "database": db_health}
    )
