# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Static verification of the isolation layer against the live catalog.

Checks, for the connected database:

- every required table exists with row-level security enabled and forced
  and at least one policy attached;
- no table carrying a tenant_id column is missing from the policy set;
- the connecting role is neither a superuser nor BYPASSRLS.

A privileged connecting role fails verification even when every policy is
correct, because the policies do not apply to it.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from nursery_isolation.infrastructure.database.models import TENANT_COLUMN
from nursery_isolation.infrastructure.database.policies import POLICY_SET
from nursery_isolation.infrastructure.database.privileges import (
    RolePrivileges,
    fetch_role_privileges,
)

logger = logging.getLogger(__name__)

_TABLE_FLAGS = text(
    """
    SELECT c.relname AS table_name,
           c.relrowsecurity AS rls_enabled,
           c.relforcerowsecurity AS rls_forced
    FROM pg_class c
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = current_schema()
      AND c.relkind IN ('r', 'p')
      AND c.relname = ANY(:tables)
    """
)

_TABLE_POLICIES = text(
    """
    SELECT DISTINCT tablename AS table_name
    FROM pg_policies
    WHERE schemaname = current_schema()
      AND tablename = ANY(:tables)
    """
)

_TENANT_COLUMN_TABLES = text(
    """
    SELECT DISTINCT c.relname AS table_name
    FROM pg_attribute a
    JOIN pg_class c ON c.oid = a.attrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = current_schema()
      AND c.relkind IN ('r', 'p')
      AND a.attname = :column
      AND NOT a.attisdropped
    """
)


@dataclass(frozen=True)
class TableSecurityStatus:
    """Row-level security state of one table.

    Attributes:
        table: Table name.
        exists: Table is present in the current schema.
        rls_enabled: ENABLE ROW LEVEL SECURITY is set.
        rls_forced: FORCE ROW LEVEL SECURITY is set.
        has_policy: At least one policy is attached.
    """

    table: str
    exists: bool
    rls_enabled: bool = False
    rls_forced: bool = False
    has_policy: bool = False

    @property
    def passed(self) -> bool:
        return self.exists and self.rls_enabled and self.rls_forced and self.has_policy

    @property
    def problems(self) -> list[str]:
        """Human-readable reasons the table fails, empty when it passes."""
        if not self.exists:
            return ["table does not exist"]
        problems = []
        if not self.rls_enabled:
            problems.append("row-level security not enabled")
        if not self.rls_forced:
            problems.append("row-level security not forced")
        if not self.has_policy:
            problems.append("no policy attached")
        return problems


@dataclass
class VerificationReport:
    """Outcome of verify_isolation().

    Attributes:
        role: Privileges of the connecting role.
        tables: Status of every required table, in check order.
        unregistered: Tables with a tenant column missing from the policy set.
    """

    role: RolePrivileges
    tables: list[TableSecurityStatus] = field(default_factory=list)
    unregistered: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return (
            self.role.is_safe
            and not self.unregistered
            and all(status.passed for status in self.tables)
        )

    def failures(self) -> list[str]:
        """List every failed check as a readable line."""
        lines = []
        if self.role.rolsuper:
            lines.append(f"role {self.role.rolname} is a superuser")
        if self.role.rolbypassrls:
            lines.append(f"role {self.role.rolname} has BYPASSRLS")
        for status in self.tables:
            for problem in status.problems:
                lines.append(f"{status.table}: {problem}")
        for table in self.unregistered:
            lines.append(f"{table}: has a tenant column but no isolation policy")
        return lines


async def inspect_tables(
    conn: AsyncConnection | AsyncSession,
    tables: Iterable[str],
) -> list[TableSecurityStatus]:
    """Read row-level security flags and policy presence from the catalog.

    Args:
        conn: Open connection or session.
        tables: Tables to inspect.

    Returns:
        One status per requested table, in request order.
    """
    names = list(tables)

    flags = {
        row.table_name: row
        for row in (await conn.execute(_TABLE_FLAGS, {"tables": names})).all()
    }
    with_policy = set((await conn.execute(_TABLE_POLICIES, {"tables": names})).scalars().all())

    statuses = []
    for name in names:
        row = flags.get(name)
        if row is None:
            statuses.append(TableSecurityStatus(table=name, exists=False))
            continue
        statuses.append(
            TableSecurityStatus(
                table=name,
                exists=True,
                rls_enabled=bool(row.rls_enabled),
                rls_forced=bool(row.rls_forced),
                has_policy=name in with_policy,
            )
        )
    return statuses


async def find_unregistered_tables(
    conn: AsyncConnection | AsyncSession,
    registered: Iterable[str],
    column: str = TENANT_COLUMN,
) -> tuple[str, ...]:
    """Find tables carrying a tenant column that have no registered policy.

    Args:
        conn: Open connection or session.
        registered: Tables covered by the policy set.
        column: Tenant column name.

    Returns:
        Sorted names of unregistered tables.
    """
    result = await conn.execute(_TENANT_COLUMN_TABLES, {"column": column})
    known = set(registered)
    return tuple(sorted(name for name in result.scalars().all() if name not in known))


async def verify_isolation(
    conn: AsyncConnection | AsyncSession,
    tables: Optional[Iterable[str]] = None,
    column: str = TENANT_COLUMN,
) -> VerificationReport:
    """Run every static isolation check against the connected database.

    Args:
        conn: Connection opened as the role under test.
        tables: Required tables. Defaults to the policy set.
        column: Tenant column name used for drift detection.

    Returns:
        The verification report.
    """
    required = list(POLICY_SET if tables is None else tables)

    role = await fetch_role_privileges(conn)
    statuses = await inspect_tables(conn, required)
    unregistered = await find_unregistered_tables(conn, set(required) | set(POLICY_SET), column)

    report = VerificationReport(role=role, tables=statuses, unregistered=unregistered)
    if report.passed:
        logger.info("Isolation verified for %d tables as role %s", len(statuses), role.rolname)
    else:
        logger.warning("Isolation verification failed: %s", "; ".join(report.failures()))
    return report
