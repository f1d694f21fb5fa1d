"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service import __version__
from catalog_sync_service.config import get_settings
from catalog_sync_service.infrastructure.database.connection import get_session
from catalog_sync_service.infrastructure.redis import CacheService, get_redis_client

router = APIRouter()
logger = structlog.get_logger()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status and version information.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "postgres": "configured",
            "redis": "configured",
            "catalog": settings.catalog_store_domain,
            "supplier": settings.supplier_api_url,
        },
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(session: AsyncSession = Depends(get_session)) -> ReadinessResponse:
    """
    Readiness check endpoint.

    Verifies the relational store and Redis answer.
    """
    checks: dict[str, bool] = {}

    try:
        await session.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception as exc:
        logger.warning("Database readiness check failed", error=str(exc))
        checks["database"] = False

    checks["redis"] = await CacheService(await get_redis_client()).health_check()

    return ReadinessResponse(ready=all(checks.values()), checks=checks)


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Returns 200 while the process is running."""
    return {"status": "alive"}
