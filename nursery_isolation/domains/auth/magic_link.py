# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Passwordless parent login.

Parents sign in through a link mailed to them. The link carries a signed
magic_link token naming the parent and their nursery. Only the token's
hash and expiry are stored on the user row.

Both steps run inside a tenant-bound unit of work. A request names the
nursery by subdomain, which is looked up in the tenant registry; a verify
binds to the tenant claim of the signed token. No step ever searches for
a user across tenants.

Example:
    >>> service = MagicLinkService(JWTManager(settings.jwt))
    >>> link_token = await service.request_magic_link("sunflowers", "parent@home.test")
    >>> access_token = await service.verify_magic_link(link_token)
"""

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nursery_isolation.domains.auth.jwt import (
    InvalidTokenError,
    JWTManager,
    TokenExpiredError,
)
from nursery_isolation.domains.tenancy.context import parse_tenant_id
from nursery_isolation.domains.tenancy.errors import TenantInactive, Unauthenticated
from nursery_isolation.infrastructure.database.models import Tenant, User
from nursery_isolation.infrastructure.database.tenant_session import (
    tenant_session,
    unscoped_session,
)

logger = logging.getLogger(__name__)

PARENT_ROLE = "PARENT"


class MagicLinkService:
    """Issues and redeems magic link tokens for parents.

    Attributes:
        _jwt_manager: Token issuer and decoder.
        _sessionmaker: Session factory. Defaults to the shared pool.
        _session_variable: Setting the policies read. Defaults to settings.
    """

    def __init__(
        self,
        jwt_manager: JWTManager,
        sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
        session_variable: Optional[str] = None,
    ) -> None:
        """Initialize the service.

        Args:
            jwt_manager: Token issuer and decoder.
            sessionmaker: Session factory.
            session_variable: Setting the policies read.
        """
        self._jwt_manager = jwt_manager
        self._sessionmaker = sessionmaker
        self._session_variable = session_variable

    async def find_tenant(self, subdomain: str) -> UUID:
        """Look up an active nursery by subdomain.

        Args:
            subdomain: Nursery subdomain.

        Returns:
            Tenant id.

        Raises:
            TenantInactive: If no active nursery uses the subdomain.
        """
        async with unscoped_session(self._sessionmaker, self._session_variable) as session:
            tenant_id = await session.scalar(
                select(Tenant.id).where(
                    Tenant.subdomain == subdomain,
                    Tenant.is_active.is_(True),
                )
            )
        if tenant_id is None:
            raise TenantInactive(subdomain)
        return tenant_id

    async def request_magic_link(self, subdomain: str, email: str) -> str | None:
        """Issue a magic link token for a parent of a nursery.

        A new request replaces any link issued before it.

        Args:
            subdomain: Nursery subdomain.
            email: Parent email address.

        Returns:
            The link token, or None when the nursery has no such parent.
            Callers must not reveal which of the two happened.

        Raises:
            TenantInactive: If no active nursery uses the subdomain.
        """
        tenant_id = await self.find_tenant(subdomain)

        async with tenant_session(tenant_id, self._sessionmaker, self._session_variable) as db:
            user = await db.scalar(
                select(User).where(
                    User.email == email,
                    User.role == PARENT_ROLE,
                    User.is_active.is_(True),
                )
            )
            if user is None:
                logger.info("Magic link requested for unknown parent in tenant %s", tenant_id)
                return None

            token = self._jwt_manager.create_magic_link_token(user.id, tenant_id, user.email)
            user.magic_link_token_hash = JWTManager.hash_token(token)
            user.magic_link_expiry = datetime.now(timezone.utc) + self._jwt_manager.magic_link_lifetime
            await db.flush()

        logger.info("Magic link issued for user %s", user.id)
        return token

    async def verify_magic_link(self, token: str) -> str:
        """Redeem a magic link token for an access token.

        The stored hash and expiry are cleared in the same statement that
        matches them, so a link can be redeemed once.

        Args:
            token: Magic link token from the mailed link.

        Returns:
            JWT access token scoped to the parent's nursery.

        Raises:
            Unauthenticated: If the token is invalid, expired, already used
                or was issued for another token type.
            MissingTenantClaim: If the token carries no tenant identifier.
        """
        try:
            payload = self._jwt_manager.decode_token(token, expected_type="magic_link")
        except TokenExpiredError:
            raise Unauthenticated("Magic link has expired")
        except InvalidTokenError as e:
            raise Unauthenticated(str(e))

        tenant_id = parse_tenant_id(payload.tenant_id)
        try:
            user_id = UUID(payload.sub)
        except ValueError:
            raise Unauthenticated("Invalid magic link")

        async with tenant_session(tenant_id, self._sessionmaker, self._session_variable) as db:
            result = await db.execute(
                update(User)
                .where(
                    User.id == user_id,
                    User.magic_link_token_hash == JWTManager.hash_token(token),
                    User.magic_link_expiry > func.now(),
                    User.is_active.is_(True),
                )
                .values(magic_link_token_hash=None, magic_link_expiry=None)
                .returning(User.id, User.email, User.role)
                .execution_options(synchronize_session=False)
            )
            row = result.one_or_none()

        if row is None:
            logger.info("Magic link rejected for user %s in tenant %s", user_id, tenant_id)
            raise Unauthenticated("Invalid or expired magic link")

        logger.info("Magic link redeemed by user %s", row.id)
        return self._jwt_manager.create_access_token(
            user_id=row.id,
            tenant_id=tenant_id,
            email=row.email,
            role=row.role,
        )
