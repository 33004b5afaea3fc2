"""
Health Check Endpoints

Provides health and readiness checks for orchestration systems.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from sales_dashboard.config import get_settings
from sales_dashboard.serving.api.dependencies import get_coordinator
from sales_dashboard.serving.refresh import RefreshCoordinator, RefreshState

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(
    coordinator: RefreshCoordinator = Depends(get_coordinator),
) -> HealthResponse:
    """
    Comprehensive health check endpoint.

    Checks:
    - Redis connectivity (shared cache)
    - Refresh coordinator state
    """
    settings = get_settings()
    checks = {}
    overall_status = "healthy"

    try:
        from sales_dashboard.serving.cache import get_redis
        redis = get_redis()
        await redis.ping()
        checks["redis"] = {"status": "healthy"}
    except Exception as e:
        checks["redis"] = {"status": "unhealthy", "error": str(e)}
        overall_status = "degraded"

    snapshot = coordinator.snapshot
    checks["refresh"] = {
        "state": snapshot.state.value,
        "has_data": snapshot.has_data,
        "last_error": snapshot.last_error,
    }
    if snapshot.state == RefreshState.FAILED:
        overall_status = "degraded"

    return HealthResponse(
        status=overall_status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """
    Liveness check endpoint.

    Returns 200 if the application is running.
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(
    response: Response,
    coordinator: RefreshCoordinator = Depends(get_coordinator),
) -> Dict[str, str]:
    """
    Readiness check endpoint.

    Ready once a result is available to display.
    """
    if not coordinator.snapshot.has_data:
        response.status_code = 503
        return {"status": "not_ready", "reason": "no_result"}
    return {"status": "ready"}
