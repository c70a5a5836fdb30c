# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant context resolution.

The resolver turns a signed credential into the tenant a unit of work may
touch. It is a pure derivation: no database access and no side effects.
There is no code path that yields "no tenant"; a request that cannot be
scoped is rejected before any query runs.

Example:
    >>> resolver = TenantContextResolver(JWTManager(settings.jwt))
    >>> context = resolver.resolve_authorization(request.headers.get("Authorization"))
    >>> async with tenant_session(context) as db:
    ...     children = (await db.scalars(select(Child))).all()
"""

import logging
from dataclasses import dataclass, field
from uuid import UUID

from nursery_isolation.domains.auth.jwt import (
    InvalidTokenError,
    JWTManager,
    TokenExpiredError,
    TokenPayload,
)
from nursery_isolation.domains.tenancy.errors import MissingTenantClaim, Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantContext:
    """Tenant scope for one unit of work.

    Attributes:
        tenant_id: Tenant (nursery) identifier.
        user_id: Authenticated user, if the scope came from a user token.
        role: Role code of the user.
        permissions: Permission codes of the user.
    """

    tenant_id: UUID
    user_id: str | None = None
    role: str | None = None
    permissions: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def for_tenant(cls, tenant_id: UUID | str) -> "TenantContext":
        """Build a context for a tenant without a user (jobs, scripts, tests).

        Args:
            tenant_id: Tenant identifier.

        Returns:
            TenantContext for the tenant.

        Raises:
            ValueError: If tenant_id is not a UUID.
        """
        return cls(tenant_id=tenant_id if isinstance(tenant_id, UUID) else UUID(tenant_id))


def parse_tenant_id(value: object, claim: str = "tenant_id") -> UUID:
    """Parse a tenant claim value into a UUID.

    Args:
        value: Raw claim value.
        claim: Claim name, for error reporting.

    Returns:
        Tenant UUID.

    Raises:
        MissingTenantClaim: If the value is absent, empty or not a UUID.
    """
    if value is None or value == "":
        raise MissingTenantClaim(claim)
    if isinstance(value, UUID):
        return value
    if not isinstance(value, str):
        raise MissingTenantClaim(claim, value)
    try:
        return UUID(value)
    except ValueError:
        raise MissingTenantClaim(claim, value)


class TenantContextResolver:
    """Derives tenant context from signed credentials.

    Attributes:
        _jwt_manager: Token decoder used to verify signature and expiry.
        _tenant_claim: Name of the claim carrying the tenant id.
    """

    def __init__(self, jwt_manager: JWTManager, tenant_claim: str = "tenant_id") -> None:
        """Initialize the resolver.

        Args:
            jwt_manager: Token decoder.
            tenant_claim: Name of the claim carrying the tenant id.
        """
        self._jwt_manager = jwt_manager
        self._tenant_claim = tenant_claim

    def resolve_payload(self, payload: TokenPayload) -> TenantContext:
        """Build tenant context from an already verified token payload.

        Args:
            payload: Decoded and verified token claims.

        Returns:
            TenantContext for the token's tenant.

        Raises:
            MissingTenantClaim: If the payload carries no valid tenant claim.
        """
        raw = getattr(payload, self._tenant_claim, None)
        tenant_id = parse_tenant_id(raw, self._tenant_claim)
        return TenantContext(
            tenant_id=tenant_id,
            user_id=payload.sub,
            role=payload.role,
            permissions=tuple(payload.permissions),
        )

    def resolve_token(self, token: str) -> TenantContext:
        """Resolve tenant context from a bearer access token.

        Args:
            token: Encoded JWT access token.

        Returns:
            TenantContext for the token's tenant.

        Raises:
            Unauthenticated: If the token is missing, malformed, expired
                or not an access token.
            MissingTenantClaim: If the token is valid but not tenant scoped.
        """
        if not token:
            raise Unauthenticated("Missing bearer token")
        try:
            payload = self._jwt_manager.decode_token(token, expected_type="access")
        except TokenExpiredError:
            raise Unauthenticated("Token has expired")
        except InvalidTokenError as e:
            raise Unauthenticated(str(e))

        context = self.resolve_payload(payload)
        logger.debug("Tenant resolved from token: %s", context.tenant_id)
        return context

    def resolve_authorization(self, header: str | None) -> TenantContext:
        """Resolve tenant context from an Authorization header value.

        Expects format: Bearer <token>

        Args:
            header: Raw Authorization header, or None.

        Returns:
            TenantContext for the token's tenant.

        Raises:
            Unauthenticated: If the header is absent or not a bearer token.
            MissingTenantClaim: If the token is valid but not tenant scoped.
        """
        if not header:
            raise Unauthenticated("Missing Authorization header")

        parts = header.split()
        if len(parts) != 2 or parts[0].lower() != "bearer":
            raise Unauthenticated("Authorization header is not a bearer token")

        return self.resolve_token(parts[1])
