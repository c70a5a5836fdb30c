# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI Application Factory.

This module provides the application factory for the nursery API seam:
authentication, tenant context and tenant-bound database sessions.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from nursery_isolation import __version__
from nursery_isolation.api.middleware.auth import AuthMiddleware
from nursery_isolation.api.middleware.tenant import TenantContextMiddleware
from nursery_isolation.api.routes import auth, health
from nursery_isolation.core.config import get_settings
from nursery_isolation.domains.tenancy import (
    IsolationError,
    MisconfiguredPrivilege,
    MissingTenantClaim,
    PolicyViolation,
    TenantInactive,
    TenantMismatch,
    Unauthenticated,
)
from nursery_isolation.infrastructure.database.connection import (
    close_database,
    get_engine,
    init_database,
)
from nursery_isolation.infrastructure.database.policies import validate_against_metadata
from nursery_isolation.infrastructure.database.privileges import check_connection_role
from nursery_isolation.utils.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup validates the policy set against the models, opens the pool
    and refuses to serve when connected as a role that bypasses row-level
    security. An unreachable database is logged and left to readiness.

    Args:
        app: The FastAPI application instance.

    Yields:
        None during application runtime.

    Raises:
        MisconfiguredPrivilege: If the connecting role bypasses isolation.
    """
    settings = get_settings()
    setup_logging(settings)
    logger.info(
        "Starting nursery API",
        extra={"environment": settings.environment, "debug": settings.debug},
    )

    validate_against_metadata()
    await init_database(settings)

    try:
        async with get_engine().connect() as conn:
            role = await check_connection_role(conn)
        logger.info("Connected as role %s", role.rolname)
    except MisconfiguredPrivilege:
        await close_database()
        raise
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database not reachable at startup: %s", str(e))

    yield

    await close_database()
    logger.info("Shutting down nursery API")


def _status_for(error: IsolationError) -> int:
    if isinstance(error, Unauthenticated):
        return status.HTTP_401_UNAUTHORIZED
    if isinstance(error, (MissingTenantClaim, TenantMismatch, TenantInactive)):
        return status.HTTP_403_FORBIDDEN
    if isinstance(error, PolicyViolation):
        # Zero-row targeted writes look like a missing entity to the caller.
        if error.original_error is None:
            return status.HTTP_404_NOT_FOUND
        return status.HTTP_403_FORBIDDEN
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def isolation_error_handler(request: Request, exc: IsolationError) -> JSONResponse:
    """Render an isolation failure without leaking other tenants' details."""
    code = _status_for(exc)
    if code >= 500:
        logger.error("Isolation failure on %s: %s", request.url.path, exc)
        detail = "Internal server error"
    else:
        logger.info("Request rejected on %s: %s", request.url.path, exc)
        detail = exc.message if isinstance(exc, PolicyViolation) else str(exc)

    headers = {"WWW-Authenticate": "Bearer"} if code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=code, content={"detail": detail}, headers=headers)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Nursery API",
        description="Multi-tenant nursery platform backend",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        redirect_slashes=False,
    )

    app.add_exception_handler(IsolationError, isolation_error_handler)

    # =========================================================================
    # Middleware (order matters - last added is first executed)
    # =========================================================================

    # Tenant context - needs request.state.user from AuthMiddleware
    app.add_middleware(TenantContextMiddleware)

    # Auth middleware - validates JWT tokens
    app.add_middleware(AuthMiddleware)

    # CORS middleware (added last to execute first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=settings.cors.allow_methods,
        allow_headers=settings.cors.allow_headers,
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(auth.router, tags=["Auth"])

    return app
