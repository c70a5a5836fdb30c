# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant-scoped units of work.

Every query against a tenant-scoped table runs inside tenant_session(),
which binds the tenant to the current transaction only:

    BEGIN
    SELECT set_config('app.current_tenant', '<tenant>', true)
    SELECT current_setting('app.current_tenant', true)   -- must match
    ... scoped queries ...
    COMMIT | ROLLBACK

The binding is transaction-local, so it ends with the transaction on every
exit path and a pooled connection never carries it into the next checkout.
No scoped query can run before the binding has been read back and matched.

Writes rejected by a tenant policy surface as PolicyViolation, never as a
silent zero-row result.

Example:
    async with tenant_session(context) as db:
        children = (await db.scalars(select(Child))).all()
"""

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, TypeVar
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.engine import Result
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import Executable

from nursery_isolation.core.config import get_settings
from nursery_isolation.domains.tenancy.context import TenantContext
from nursery_isolation.domains.tenancy.errors import (
    PolicyViolation,
    StaleBinding,
    UnscopedSessionError,
)
from nursery_isolation.infrastructure.database.connection import DatabaseError, get_sessionmaker

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BIND = text("SELECT set_config(:name, :value, true)")
_READ_BACK = text("SELECT current_setting(:name, true)")

INSUFFICIENT_PRIVILEGE = "42501"
_RLS_MESSAGE = re.compile(r'row-level security policy for table "(?P<table>[^"]+)"')


def _sqlstate(error: DBAPIError) -> Optional[str]:
    orig = error.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


def as_policy_violation(error: SQLAlchemyError) -> Optional[PolicyViolation]:
    """Translate a row-level security rejection into PolicyViolation.

    Args:
        error: Error raised by SQLAlchemy.

    Returns:
        PolicyViolation when the error is a policy rejection, otherwise None.
    """
    if not isinstance(error, DBAPIError):
        return None

    code = _sqlstate(error)
    if code is not None and code != INSUFFICIENT_PRIVILEGE:
        return None

    match = _RLS_MESSAGE.search(str(error.orig))
    if match is None:
        return None

    return PolicyViolation(
        "Write rejected by tenant isolation policy",
        table=match.group("table"),
        original_error=error,
    )


def _coerce_tenant(tenant: TenantContext | UUID | str) -> UUID:
    if isinstance(tenant, TenantContext):
        return tenant.tenant_id
    if isinstance(tenant, UUID):
        return tenant
    return UUID(str(tenant))


class TenantScopedSession:
    """Handle for queries inside one tenant-bound transaction.

    Wraps an AsyncSession whose transaction is bound to a single tenant.
    The handle refuses every call once its unit of work has ended.

    Attributes:
        tenant_id: The tenant the transaction is bound to.
    """

    def __init__(self, session: AsyncSession, tenant_id: UUID, session_variable: str) -> None:
        self._session = session
        self._tenant_id = tenant_id
        self._session_variable = session_variable
        self._active = True

    @property
    def tenant_id(self) -> UUID:
        return self._tenant_id

    @property
    def is_active(self) -> bool:
        return self._active

    def _require_active(self) -> AsyncSession:
        if not self._active:
            raise UnscopedSessionError(
                f"Session for tenant {self._tenant_id} used after its unit of work ended"
            )
        return self._session

    def _release(self) -> None:
        self._active = False

    async def _bind(self) -> None:
        session = self._require_active()
        expected = str(self._tenant_id)
        await session.execute(_BIND, {"name": self._session_variable, "value": expected})

        actual = await self.current_binding()
        if actual != expected:
            raise StaleBinding(expected, actual)

        logger.debug("Transaction bound to tenant %s", expected)

    async def current_binding(self) -> Optional[str]:
        """Read the tenant binding of the current transaction.

        Returns:
            The bound tenant id, or None when nothing is bound.
        """
        session = self._require_active()
        result = await session.execute(_READ_BACK, {"name": self._session_variable})
        value = result.scalar_one_or_none()
        return value or None

    async def execute(self, statement: Executable, params: Optional[dict[str, Any]] = None) -> Result[Any]:
        """Execute a statement under the tenant binding.

        Raises:
            PolicyViolation: If a tenant policy rejects the statement.
            UnscopedSessionError: If the unit of work has ended.
        """
        session = self._require_active()
        try:
            return await session.execute(statement, params)
        except DBAPIError as e:
            violation = as_policy_violation(e)
            if violation is not None:
                raise violation from e
            raise

    async def execute_write(
        self,
        statement: Executable,
        params: Optional[dict[str, Any]] = None,
        table: Optional[str] = None,
    ) -> int:
        """Execute a targeted UPDATE or DELETE that must affect at least one row.

        Rows of other tenants are invisible to the statement, so a zero row
        count means the target does not exist for this tenant.

        Args:
            statement: UPDATE or DELETE statement.
            params: Bound parameters.
            table: Target table, reported on failure.

        Returns:
            Number of affected rows.

        Raises:
            PolicyViolation: If the statement is rejected or matches no visible row.
        """
        result = await self.execute(statement, params)
        affected = result.rowcount
        if not affected:
            raise PolicyViolation(
                f"Write matched no row visible to tenant {self._tenant_id}",
                table=table,
            )
        return affected

    async def scalars(self, statement: Executable, params: Optional[dict[str, Any]] = None) -> Any:
        """Execute a statement and return its ScalarResult."""
        result = await self.execute(statement, params)
        return result.scalars()

    async def scalar(self, statement: Executable, params: Optional[dict[str, Any]] = None) -> Any:
        """Execute a statement and return the first column of the first row."""
        result = await self.execute(statement, params)
        return result.scalar()

    async def get(self, entity: type[T], ident: Any) -> Optional[T]:
        """Load an entity by primary key; rows of other tenants return None."""
        session = self._require_active()
        return await session.get(entity, ident)

    def add(self, instance: object) -> None:
        self._require_active().add(instance)

    def add_all(self, instances: list[object]) -> None:
        self._require_active().add_all(instances)

    async def delete(self, instance: object) -> None:
        await self._require_active().delete(instance)

    async def flush(self) -> None:
        """Flush pending changes.

        Raises:
            PolicyViolation: If a tenant policy rejects a pending row.
        """
        session = self._require_active()
        try:
            await session.flush()
        except DBAPIError as e:
            violation = as_policy_violation(e)
            if violation is not None:
                raise violation from e
            raise


@asynccontextmanager
async def tenant_session(
    tenant: TenantContext | UUID | str,
    sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
    session_variable: Optional[str] = None,
) -> AsyncIterator[TenantScopedSession]:
    """Run a unit of work bound to one tenant.

    The transaction is committed on success and rolled back on any
    exception. The yielded handle is unusable after the block exits.

    Args:
        tenant: Tenant context or tenant id to bind.
        sessionmaker: Session factory. Defaults to the shared pool.
        session_variable: Setting the policies read. Defaults to settings.

    Yields:
        TenantScopedSession bound to the tenant.

    Raises:
        StaleBinding: If the binding read back differs from the tenant.
        PolicyViolation: If a tenant policy rejects a write.
        DatabaseError: If any other database operation fails.
    """
    tenant_id = _coerce_tenant(tenant)
    factory = sessionmaker or get_sessionmaker()
    variable = session_variable or get_settings().tenancy.session_variable

    async with factory() as session:
        scoped = TenantScopedSession(session, tenant_id, variable)
        try:
            await scoped._bind()
            yield scoped
            await session.commit()
        except DBAPIError as e:
            await session.rollback()
            violation = as_policy_violation(e)
            if violation is not None:
                raise violation from e
            raise DatabaseError("Database operation failed", e) from e
        except SQLAlchemyError as e:
            await session.rollback()
            raise DatabaseError("Database operation failed", e) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            scoped._release()


@asynccontextmanager
async def unscoped_session(
    sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None,
    session_variable: Optional[str] = None,
) -> AsyncIterator[AsyncSession]:
    """Open a read-only session with an explicitly empty tenant binding.

    Used for reads of the tenant registry, which is not tenant scoped,
    before a tenant is known. Tenant-scoped tables return no rows through
    it. The transaction is always rolled back.

    Yields:
        AsyncSession with no tenant bound.
    """
    factory = sessionmaker or get_sessionmaker()
    variable = session_variable or get_settings().tenancy.session_variable

    async with factory() as session:
        try:
            await session.execute(_BIND, {"name": variable, "value": ""})
            yield session
        finally:
            await session.rollback()
