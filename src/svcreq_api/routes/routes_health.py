"""Health check endpoints for monitoring application status."""

from datetime import datetime
from datetime import timezone

from fastapi import APIRouter
from fastapi import Request
from fastapi import status
from fastapi.responses import JSONResponse
from loguru import logger

ROUTER_HEALTH = APIRouter(tags=["Health"])


@ROUTER_HEALTH.get(
    "/health",
    summary="Health check endpoint",
    description="Basic health check that returns application status and metadata",
    responses={
        status.HTTP_200_OK: {
            "description": "Application is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "timestamp": "2026-01-05T12:00:00.000000Z",
                        "service": "Service Request Workflow API",
                        "version": "v1",
                        "environment": "dev",
                        "store": "memory",
                    }
                }
            },
        }
    },
)
async def health_check(request: Request):
    """
    Basic health check endpoint.

    Returns application status and metadata. This endpoint is lightweight
    and does not perform any external dependency checks.
    """
    settings = request.app.state.settings

    response_data = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": settings.app_name,
        "version": "v1",
        "environment": settings.environment,
        "store": "postgres" if settings.domain_db_connection_string else "memory",
    }

    logger.debug("Health check requested", status="healthy")

    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content=response_data,
    )


@ROUTER_HEALTH.get(
    "/health/db",
    summary="Database health check",
    description="Checks connectivity to the workflow database (in-memory store always reports healthy)",
    responses={
        status.HTTP_200_OK: {"description": "Database reachable"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Database unreachable"},
    },
)
async def database_health_check(request: Request):
    """Readiness check for the workflow store."""
    domain_db_pool = getattr(request.app.state, "domain_db_pool", None)
    if domain_db_pool is None:
        return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "healthy", "store": "memory"})

    healthy = await domain_db_pool.health_check()
    if not healthy:
        logger.warning("Database health check failed")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "store": "postgres"},
        )

    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "healthy", "store": "postgres"})
