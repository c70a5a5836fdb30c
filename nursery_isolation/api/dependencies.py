# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

Dependencies are used to:
- Get the authenticated user
- Get the tenant context of the request
- Get a database session bound to that tenant

Example:
    @router.get("/children")
    async def list_children(
        db: TenantScopedSession = Depends(get_tenant_db),
    ):
        return (await db.scalars(select(Child))).all()
"""

import logging
from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends, HTTPException, Request, status

from nursery_isolation.api.middleware.auth import CurrentUser, get_current_user
from nursery_isolation.api.middleware.tenant import get_tenant_from_request
from nursery_isolation.core.config import get_settings
from nursery_isolation.domains.auth.jwt import JWTManager
from nursery_isolation.domains.auth.magic_link import MagicLinkService
from nursery_isolation.domains.tenancy import (
    MissingTenantClaim,
    TenantContext,
    TenantContextResolver,
    TenantInactive,
    TenantMismatch,
)
from nursery_isolation.infrastructure.database.models import Tenant
from nursery_isolation.infrastructure.database.tenant_session import (
    TenantScopedSession,
    tenant_session,
)

logger = logging.getLogger(__name__)


def get_jwt_manager() -> JWTManager:
    """Get JWT manager instance.

    Returns:
        JWTManager.
    """
    settings = get_settings()
    return JWTManager(settings.jwt)


def get_magic_link_service(
    jwt_manager: JWTManager = Depends(get_jwt_manager),
) -> MagicLinkService:
    """Get the passwordless login service over the shared pool."""
    return MagicLinkService(jwt_manager)


@lru_cache
def get_tenant_resolver() -> TenantContextResolver:
    """Get the tenant resolver built from settings."""
    settings = get_settings()
    return TenantContextResolver(
        get_jwt_manager(),
        tenant_claim=settings.tenancy.tenant_claim,
    )


# =========================================================================
# Authentication Dependencies
# =========================================================================


def require_auth(request: Request) -> CurrentUser:
    """Require authenticated user.

    Args:
        request: HTTP request.

    Returns:
        CurrentUser.

    Raises:
        HTTPException: 401 if not authenticated.
    """
    user = get_current_user(request)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=getattr(request.state, "auth_error", None) or "Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


class RequirePermission:
    """Dependency for requiring specific permissions.

    Example:
        @router.get("/invoices")
        async def list_invoices(
            user: CurrentUser = Depends(RequirePermission("billing.view")),
        ):
            ...
    """

    def __init__(self, *permissions: str, require_all: bool = False) -> None:
        """Initialize permission requirement.

        Args:
            permissions: Required permission codes.
            require_all: If True, require all permissions. If False, any.
        """
        self.permissions = permissions
        self.require_all = require_all

    def __call__(self, request: Request) -> CurrentUser:
        """Check permissions and return user.

        Raises:
            HTTPException: If missing required permissions.
        """
        user = require_auth(request)

        if self.require_all:
            if not user.has_all_permissions(*self.permissions):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Missing permissions: {', '.join(self.permissions)}",
                )
        else:
            if not user.has_any_permission(*self.permissions):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Requires one of: {', '.join(self.permissions)}",
                )

        return user


class RequireRole:
    """Dependency for requiring specific roles.

    Example:
        @router.get("/staff")
        async def staff_only(
            user: CurrentUser = Depends(RequireRole("OWNER", "MANAGER")),
        ):
            ...
    """

    def __init__(self, *roles: str) -> None:
        """Initialize role requirement.

        Args:
            roles: Accepted role codes (any of these).
        """
        self.roles = roles

    def __call__(self, request: Request) -> CurrentUser:
        """Check roles and return user.

        Raises:
            HTTPException: If the user has none of the roles.
        """
        user = require_auth(request)

        if not user.has_any_role(*self.roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(self.roles)}",
            )

        return user


# =========================================================================
# Tenant Dependencies
# =========================================================================


def require_tenant_context(
    request: Request,
    user: CurrentUser = Depends(require_auth),
) -> TenantContext:
    """Require a tenant context derived from the authenticated user.

    The context resolved here from the verified token must equal the one
    the tenant middleware attached to the request.

    Args:
        request: HTTP request.
        user: Authenticated user.

    Returns:
        TenantContext of the request.

    Raises:
        HTTPException: 403 if the token has no usable tenant claim or the
            request context disagrees with the token.
    """
    try:
        context = get_tenant_resolver().resolve_payload(user.payload)
    except MissingTenantClaim as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))

    request_context = get_tenant_from_request(request)
    if request_context is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Tenant context not initialized",
        )

    if request_context.tenant_id != context.tenant_id:
        error = TenantMismatch(context.tenant_id, request_context.tenant_id)
        logger.warning("%s", error)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))

    return context


async def get_tenant_db(
    context: TenantContext = Depends(require_tenant_context),
) -> AsyncGenerator[TenantScopedSession, None]:
    """Get a database session bound to the request's tenant.

    The tenant must exist in the registry and be active.

    Args:
        context: Tenant context of the request.

    Yields:
        TenantScopedSession for the request's unit of work.

    Raises:
        HTTPException: 403 if the tenant is unknown or disabled.
    """
    async with tenant_session(context) as db:
        tenant = await db.get(Tenant, context.tenant_id)
        if tenant is None or not tenant.is_active:
            error = TenantInactive(context.tenant_id)
            logger.warning("%s", error)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(error))
        yield db
