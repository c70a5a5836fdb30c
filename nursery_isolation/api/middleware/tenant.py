# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant context middleware.

Runs after AuthMiddleware. Derives the tenant context from the verified
user token, stores it in request.state.tenant and binds request_id,
tenant_id and user_id to the log context for the duration of the request.

The middleware never rejects a request. A request without a resolvable
tenant carries request.state.tenant = None, and require_tenant_context
turns that into 401 or 403 before any database work happens.
"""

import logging
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from nursery_isolation.core.config import get_settings
from nursery_isolation.domains.auth.jwt import JWTManager
from nursery_isolation.domains.tenancy import IsolationError, TenantContext, TenantContextResolver
from nursery_isolation.utils.logging import bound_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Middleware attaching tenant context and log context to each request.

    Attributes:
        _resolver: Tenant context resolver.
    """

    def __init__(self, app: ASGIApp, resolver: TenantContextResolver | None = None) -> None:
        """Initialize the tenant context middleware.

        Args:
            app: ASGI application.
            resolver: Tenant resolver. Defaults to one built from settings.
        """
        super().__init__(app)
        if resolver is None:
            settings = get_settings()
            resolver = TenantContextResolver(
                JWTManager(settings.jwt),
                tenant_claim=settings.tenancy.tenant_claim,
            )
        self._resolver = resolver

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response],
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        request.state.tenant = None
        request.state.tenant_error = None

        user = getattr(request.state, "user", None)
        if user is not None:
            try:
                request.state.tenant = self._resolver.resolve_payload(user.payload)
            except IsolationError as e:
                logger.debug("No tenant context for user %s: %s", user.id, e)
                request.state.tenant_error = e

        tenant: TenantContext | None = request.state.tenant
        with bound_context(
            request_id=request_id,
            tenant_id=str(tenant.tenant_id) if tenant else None,
            user_id=user.id if user else None,
        ):
            response = await call_next(request)

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def get_tenant_from_request(request: Request) -> TenantContext | None:
    """Get the tenant context resolved for this request, if any."""
    return getattr(request.state, "tenant", None)
