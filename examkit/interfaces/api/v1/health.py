"""
ExamKit - Health Check Endpoints
Database and Redis health monitoring
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel

from examkit.infrastructure.cache import CacheManager
from examkit.infrastructure.database import DatabaseManager
from examkit.interfaces.api.v1.dependencies import get_cache

logger = structlog.get_logger(__name__)

router = APIRouter()


class HealthStatus(BaseModel):
    """Health check response model."""
    status: str
    timestamp: str
    version: str
    checks: Dict[str, Any]


async def get_db_manager(request: Request) -> DatabaseManager:
    """Get database manager from app state."""
    return request.app.state.db


async def _timed(check) -> Dict[str, Any]:
    start = time.monotonic()
    result = await check()
    return {**result, "latency_ms": round((time.monotonic() - start) * 1000, 2)}


@router.get(
    "",
    response_model=HealthStatus,
    summary="Health Check",
    description="Database and cache health",
)
async def health_check(
    request: Request,
    db: DatabaseManager = Depends(get_db_manager),
    cache: Optional[CacheManager] = Depends(get_cache),
) -> HealthStatus:
    checks: Dict[str, Any] = {}
    overall_status = "healthy"

    checks["database"] = await _timed(db.health_check)
    if checks["database"]["status"] != "healthy":
        overall_status = "degraded"

    # Cache is optional; a missing cache is not a degradation
    if cache is None:
        checks["redis"] = {"status": "disabled"}
    else:
        checks["redis"] = await _timed(cache.health_check)
        if checks["redis"]["status"] != "healthy":
            overall_status = "degraded"

    return HealthStatus(
        status=overall_status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=request.app.state.settings.app_version,
        checks=checks,
    )


@router.get(
    "/live",
    status_code=status.HTTP_200_OK,
    summary="Liveness Probe",
)
async def liveness() -> Dict[str, str]:
    """Returns 200 if the application is running."""
    return {"status": "alive"}


@router.get(
    "/ready",
    summary="Readiness Probe",
)
async def readiness(
    response: Response,
    db: DatabaseManager = Depends(get_db_manager),
    cache: Optional[CacheManager] = Depends(get_cache),
) -> Dict[str, str]:
    """Returns 503 until the database (and cache, when enabled) answer."""
    db_health = await db.health_check()
    if db_health["status"] != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "not_ready", "reason": "database"}

    if cache is not None:
        cache_health = await cache.health_check()
        if cache_health["status"] != "healthy":
            response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
            return {"status": "not_ready", "reason": "cache"}

    return {"status": "ready"}
