"""
Health check endpoints for monitoring and orchestration.

Provides:
- Liveness probe: Is the app running?
- Readiness probe: Can the app serve traffic?
- Detailed health check: Status of all dependencies
"""

import time
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text

from planguard.config import settings
from planguard.core.cache import cache_manager
from planguard.core.database import db_manager
from planguard.models.subscription import SubscriptionPlan

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])


async def _check_database() -> dict[str, Any]:
    start = time.perf_counter()
    try:
        async for db in db_manager.get_session():
            await db.execute(text("SELECT 1"))
            plan_count = (
                await db.execute(
                    select(func.count(SubscriptionPlan.id)).where(SubscriptionPlan.is_active.is_(True))
                )
            ).scalar_one()
    except Exception as e:
        logger.warning("health_database_unhealthy", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
        "active_plans": plan_count,
    }


async def _check_redis() -> dict[str, Any]:
    if not cache_manager.is_ready:
        return {"status": "disabled"}

    start = time.perf_counter()
    try:
        await cache_manager.client.ping()
    except Exception as e:
        logger.warning("health_redis_unhealthy", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
    }


@router.get("/health/live")
async def liveness() -> dict:
    """
    Liveness probe.

    Returns:
        200: Application is running
    """
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness() -> JSONResponse:
    """
    Readiness probe.

    Only the database gates readiness; the plan cache is optional and
    every lookup falls back to the database.

    Returns:
        200: Ready to serve traffic
        503: Database unavailable
    """
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
    }
    is_ready = checks["database"]["status"] == "healthy"

    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if is_ready else "not_ready",
            "checks": checks,
        },
    )


@router.get("/health")
async def health() -> dict:
    """
    Detailed health check with dependency status.

    A missing cache degrades nothing; an empty plan catalog is reported
    because every tenant would then fall back to the built-in Free plan.
    """
    checks: dict[str, Any] = {
        "database": await _check_database(),
        "redis": await _check_redis(),
        "billing": {"status": "configured" if settings.billing_enabled else "not_configured"},
    }

    overall_status = "healthy"
    if checks["database"]["status"] != "healthy":
        overall_status = "degraded"
    elif checks["database"]["active_plans"] == 0:
        overall_status = "degraded"
        checks["database"]["message"] = "Plan catalog is empty; run scripts/seed_plans.py"
    if checks["redis"]["status"] == "unhealthy":
        overall_status = "degraded"

    return {
        "status": overall_status,
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks,
    }
