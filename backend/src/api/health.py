"""
Health check endpoints for monitoring service status.
"""

import asyncio
import time
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from backend.src.core.auth import get_current_user
from backend.src.core.config import settings
from backend.src.core.database import get_db
from backend.src.core.logging import get_logger
from backend.src.models.base import DetailedHealthStatus, HealthStatus

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthStatus,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns basic health status without authentication",
)
async def health_check() -> HealthStatus:
    """
    Basic health check endpoint.

    Returns:
        Health status

    Example:
        ```bash
        curl http://localhost:8000/health
        ```
    """
    return HealthStatus(
        status="healthy",
        timestamp=datetime.utcnow(),
    )


@router.get(
    "/v1/health/detailed",
    response_model=DetailedHealthStatus,
    status_code=status.HTTP_200_OK,
    summary="Detailed health check",
    description="Returns detailed health status with component checks (requires authentication)",
    dependencies=[Depends(get_current_user)],
)
async def detailed_health_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> DetailedHealthStatus:
    """
    Detailed health check with component status.

    Checks:
    - Database connectivity
    - Crawl and monitor schedulers
    - Application configuration

    Requires authentication.

    Returns:
        Detailed health status

    Raises:
        HTTPException: If any critical component is unhealthy

    Example:
        ```bash
        curl -H "X-API-Key: your-key" http://localhost:8000/v1/health/detailed
        ```
    """
    components: Dict[str, Any] = {}
    overall_status = "healthy"

    # Check database
    db_status = await check_database_health(db)
    components["database"] = db_status
    if db_status["status"] != "healthy":
        overall_status = "degraded"
        logger.warning("Database health check failed", extra=db_status)

    # Check schedulers
    scheduler_status = check_scheduler_health(request)
    components["scheduler"] = scheduler_status
    if scheduler_status["status"] != "healthy":
        overall_status = "degraded"
        logger.warning("Scheduler health check failed", extra=scheduler_status)

    # Application info
    components["application"] = {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "debug": settings.DEBUG,
    }

    # If overall status is not healthy, return 503
    if overall_status == "unhealthy":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service is unhealthy",
        )

    return DetailedHealthStatus(
        status=overall_status,
        timestamp=datetime.utcnow(),
        components=components,
        version="0.1.0",
        environment=settings.ENVIRONMENT,
    )


async def check_database_health(db: AsyncSession) -> Dict[str, Any]:
    """
    Check database connectivity and status.

    Args:
        db: Database session

    Returns:
        Health status dictionary
    """
    try:
        # Simple query to verify connection
        started = time.monotonic()
        result = await asyncio.wait_for(
            db.execute(text("SELECT 1 AS health_check")),
            timeout=settings.HEALTH_CHECK_TIMEOUT,
        )
        row = result.fetchone()

        if row and row[0] == 1:
            return {
                "status": "healthy",
                "service": "database",
                "response_time_ms": round((time.monotonic() - started) * 1000, 2),
            }
        else:
            return {
                "status": "unhealthy",
                "service": "database",
                "error": "Invalid response from database",
            }

    except Exception as e:
        logger.error(
            "Database health check failed",
            extra={"error": str(e)},
            exc_info=True,
        )
        return {
            "status": "unhealthy",
            "service": "database",
            "error": str(e),
        }


def check_scheduler_health(request: Request) -> Dict[str, Any]:
    """
    Check that the crawl and monitor schedulers are running.

    Args:
        request: Current request, used to reach application state

    Returns:
        Health status dictionary
    """
    manager = getattr(request.app.state, "schedule_manager", None)
    registry = getattr(request.app.state, "monitor_registry", None)

    if manager is None or registry is None:
        return {"status": "unhealthy", "error": "Schedulers are not initialized"}

    healthy = manager.running and registry.running
    return {
        "status": "healthy" if healthy else "unhealthy",
        "crawl_scheduler_running": manager.running,
        "crawl_jobs": len(manager.list_jobs()),
        "monitor_scheduler_running": registry.running,
        "active_monitors": registry.monitor_count,
    }


@router.get(
    "/v1/health/ready",
    status_code=status.HTTP_200_OK,
    summary="Readiness check",
    description="Kubernetes-style readiness probe",
)
async def readiness_check(db: AsyncSession = Depends(get_db)) -> Dict[str, str]:
    """
    Readiness check for Kubernetes/container orchestration.

    Verifies that the service is ready to accept traffic.

    Returns:
        Ready status

    Raises:
        HTTPException: If service is not ready

    Example:
        ```bash
        curl http://localhost:8000/v1/health/ready
        ```
    """
    # Check critical dependencies
    db_status = await check_database_health(db)

    if db_status["status"] != "healthy":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not ready - database unavailable",
        )

    return {"status": "ready"}


@router.get(
    "/v1/health/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness check",
    description="Kubernetes-style liveness probe",
)
async def liveness_check() -> Dict[str, str]:
    """
    Liveness check for Kubernetes/container orchestration.

    Verifies that the service is alive and should not be restarted.

    Returns:
        Alive status

    Example:
        ```bash
        curl http://localhost:8000/v1/health/live
        ```
    """
    return {"status": "alive"}


# Export router
__all__ = ["router"]
