"""
Liveness and readiness probes.

``/health`` never touches the database. ``/ready`` round-trips the database
and reports how much background export/GDPR work is still in flight.
"""

import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from geofora.config import settings
from geofora.container import ServiceContainer, get_db, get_services

router = APIRouter(tags=["Monitoring"])

STARTED_AT = time.time()


class HealthStatus(BaseModel):
    status: str
    timestamp: str
    version: str
    environment: str
    uptime_seconds: float


class ReadinessStatus(BaseModel):
    status: str
    timestamp: str
    checks: dict[str, dict[str, Any]]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    return HealthStatus(
        status="healthy",
        timestamp=_now(),
        version=settings.app_version,
        environment=settings.environment,
        uptime_seconds=round(time.time() - STARTED_AT, 2),
    )


@router.get("/ready", response_model=ReadinessStatus)
async def readiness_check(
    db: AsyncSession = Depends(get_db),
    services: ServiceContainer = Depends(get_services),
) -> ReadinessStatus:
    checks = {
        "database": await _database_check(db),
        "background_tasks": {
            "status": "healthy",
            "in_flight": services.dispatcher.pending_count(),
            "job_store": settings.job_store_backend,
        },
    }
    ready = all(check["status"] == "healthy" for check in checks.values())
    return ReadinessStatus(status="ready" if ready else "not_ready", timestamp=_now(), checks=checks)


async def _database_check(db: AsyncSession) -> dict[str, Any]:
    started = time.perf_counter()
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy", "latency_ms": round((time.perf_counter() - started) * 1000, 2)}
