# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

/health reports liveness and database reachability. /health/ready also
requires the connecting role to be subject to row-level security; an
instance connected as a superuser or BYPASSRLS role is never ready.
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Response, status
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from nursery_isolation import __version__
from nursery_isolation.core.config import get_settings
from nursery_isolation.infrastructure.database.connection import DatabaseError, get_engine
from nursery_isolation.infrastructure.database.privileges import fetch_role_privileges

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""
    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(description="Overall health status")
    timestamp: datetime = Field(description="Current server timestamp")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    database: ComponentHealth = Field(description="Database status")


class ReadinessResponse(BaseModel):
    """Readiness check response model."""
    ready: bool = Field(description="Whether the service is ready")
    checks: dict[str, Any] = Field(description="Individual check results")


async def check_database() -> ComponentHealth:
    """Check PostgreSQL database connection."""
    try:
        engine = get_engine()
        start = time.time()

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        latency = (time.time() - start) * 1000
        return ComponentHealth(status="healthy", latency_ms=round(latency, 2))
    except (DatabaseError, SQLAlchemyError, OSError) as e:
        logger.error("Database health check failed: %s", e)
        return ComponentHealth(status="unhealthy", message=str(e))


async def check_role() -> ComponentHealth:
    """Check that the connecting role cannot bypass row-level security."""
    try:
        engine = get_engine()
        async with engine.connect() as conn:
            privileges = await fetch_role_privileges(conn)
    except (DatabaseError, SQLAlchemyError, OSError, LookupError) as e:
        logger.error("Role check failed: %s", e)
        return ComponentHealth(status="unhealthy", message=str(e))

    if not privileges.is_safe:
        logger.error("Connected as privileged role %s", privileges.rolname)
        return ComponentHealth(
            status="unhealthy",
            message=f"Role {privileges.rolname} bypasses row-level security",
        )
    return ComponentHealth(status="healthy", message=privileges.rolname)


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check if the API is alive and the database reachable."""
    settings = get_settings()
    db_health = await check_database()

    return HealthResponse(
        status="healthy" if db_health.status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=__version__,
        environment=settings.environment,
        uptime_seconds=int(time.time() - _server_start_time),
        database=db_health,
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Check if the API is ready to accept traffic.

    Returns 503 when the database is unreachable or the connecting role
    bypasses row-level security.
    """
    db_health = await check_database()
    checks: dict[str, Any] = {
        "database": {"status": db_health.status, "latency_ms": db_health.latency_ms},
    }

    role_health = ComponentHealth(status="unhealthy", message="database unreachable")
    if db_health.status == "healthy":
        role_health = await check_role()
    checks["role"] = {"status": role_health.status, "message": role_health.message}

    ready = db_health.status == "healthy" and role_health.status == "healthy"
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(ready=ready, checks=checks)
