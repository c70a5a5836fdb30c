# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Row-level security policy set.

Tenant isolation is enforced by PostgreSQL, below the application. Every
tenant-scoped table gets:

1. ENABLE ROW LEVEL SECURITY
2. FORCE ROW LEVEL SECURITY, so the owning role is subject to it as well
3. One policy for all commands:
       USING      (tenant_id = current_session_tenant())
       WITH CHECK (tenant_id = current_session_tenant())

current_session_tenant() reads the transaction's tenant binding and
returns NULL when nothing is bound. A NULL binding makes the predicate NULL
for every row, so an unbound transaction sees zero rows and can write none.

The table-to-policy mapping is explicit and validated against the models,
so adding a tenant-scoped model without a policy (or the reverse) fails
loudly instead of shipping an unprotected table.

Example:
    async with engine.begin() as conn:
        await apply_policy_set(conn, settings.tenancy.session_variable)
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Mapping

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from nursery_isolation.domains.tenancy.errors import IsolationError
from nursery_isolation.infrastructure.database.models import TENANT_COLUMN, tenant_scoped_tables

logger = logging.getLogger(__name__)

POLICY_NAME = "tenant_isolation"
SESSION_TENANT_FUNCTION = "current_session_tenant"
DEFAULT_SESSION_VARIABLE = "app.current_tenant"

# Tables that must carry an enabled and forced tenant policy.
REQUIRED_TABLES: tuple[str, ...] = (
    "users",
    "children",
    "rooms",
    "daily_logs",
    "attendance_records",
    "invoices",
    "invoice_items",
    "payments",
    "conversations",
    "messages",
    "announcements",
    "announcement_reads",
    "audit_logs",
)

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")
_SESSION_VARIABLE = re.compile(r"^[a-z_][a-z0-9_]*\.[a-z_][a-z0-9_]*$")


class PolicyDriftError(IsolationError):
    """Raised when the policy set and the tenant-scoped tables disagree.

    Attributes:
        unprotected: Tenant-scoped tables without a policy.
        orphaned: Policies for tables that are not tenant-scoped.
    """

    def __init__(self, unprotected: Iterable[str], orphaned: Iterable[str]) -> None:
        """Initialize the error.

        Args:
            unprotected: Tenant-scoped tables without a policy.
            orphaned: Policies for tables that are not tenant-scoped.
        """
        self.unprotected = tuple(sorted(unprotected))
        self.orphaned = tuple(sorted(orphaned))
        parts = []
        if self.unprotected:
            parts.append(f"tables without policy: {', '.join(self.unprotected)}")
        if self.orphaned:
            parts.append(f"policies without tenant-scoped table: {', '.join(self.orphaned)}")
        super().__init__("Policy set drift: " + "; ".join(parts))


def _identifier(value: str) -> str:
    if not _IDENTIFIER.match(value):
        raise ValueError(f"Invalid SQL identifier: {value!r}")
    return value


def session_tenant_function_sql(session_variable: str = DEFAULT_SESSION_VARIABLE) -> str:
    """Build the DDL for current_session_tenant().

    Args:
        session_variable: Qualified setting name holding the binding.

    Returns:
        CREATE OR REPLACE FUNCTION statement.

    Raises:
        ValueError: If session_variable is not a qualified setting name.
    """
    if not _SESSION_VARIABLE.match(session_variable):
        raise ValueError(f"Invalid session variable: {session_variable!r}")
    return (
        f"CREATE OR REPLACE FUNCTION {SESSION_TENANT_FUNCTION}() RETURNS uuid "
        "LANGUAGE sql STABLE PARALLEL SAFE AS $$ "
        f"SELECT NULLIF(current_setting('{session_variable}', true), '')::uuid "
        "$$"
    )


@dataclass(frozen=True)
class TenantPolicy:
    """Isolation policy for one tenant-scoped table.

    Attributes:
        table: Table name.
        column: Column holding the owning tenant.
        name: Policy name.
    """

    table: str
    column: str = TENANT_COLUMN
    name: str = POLICY_NAME

    def __post_init__(self) -> None:
        _identifier(self.table)
        _identifier(self.column)
        _identifier(self.name)

    @property
    def using_clause(self) -> str:
        """Row predicate shared by reads and writes."""
        return f"{self.column} = {SESSION_TENANT_FUNCTION}()"

    def statements(self) -> list[str]:
        """Build the DDL that enables, forces and declares the policy.

        Returns:
            Statements in execution order. Re-running them is safe.
        """
        return [
            f"ALTER TABLE {self.table} ENABLE ROW LEVEL SECURITY",
            f"ALTER TABLE {self.table} FORCE ROW LEVEL SECURITY",
            f"DROP POLICY IF EXISTS {self.name} ON {self.table}",
            (
                f"CREATE POLICY {self.name} ON {self.table} FOR ALL "
                f"USING ({self.using_clause}) WITH CHECK ({self.using_clause})"
            ),
        ]

    def drop_statements(self) -> list[str]:
        """Build the DDL that removes the policy and disables RLS."""
        return [
            f"DROP POLICY IF EXISTS {self.name} ON {self.table}",
            f"ALTER TABLE {self.table} NO FORCE ROW LEVEL SECURITY",
            f"ALTER TABLE {self.table} DISABLE ROW LEVEL SECURITY",
        ]


POLICY_SET: Mapping[str, TenantPolicy] = {table: TenantPolicy(table) for table in REQUIRED_TABLES}


def validate_against_metadata(
    policy_set: Mapping[str, TenantPolicy] | None = None,
    scoped_tables: Iterable[str] | None = None,
) -> None:
    """Check that every tenant-scoped table has exactly one policy.

    Args:
        policy_set: Mapping to validate. Defaults to POLICY_SET.
        scoped_tables: Tenant-scoped tables. Defaults to the mapped models.

    Raises:
        PolicyDriftError: If the mapping and the tables differ.
    """
    policies = set(POLICY_SET if policy_set is None else policy_set)
    tables = set(tenant_scoped_tables() if scoped_tables is None else scoped_tables)

    if policies != tables:
        raise PolicyDriftError(tables - policies, policies - tables)


validate_against_metadata()


def policy_set_statements(
    session_variable: str = DEFAULT_SESSION_VARIABLE,
    policy_set: Mapping[str, TenantPolicy] | None = None,
) -> list[str]:
    """Build the full DDL for the policy set, function first.

    Args:
        session_variable: Qualified setting name holding the binding.
        policy_set: Policies to emit. Defaults to POLICY_SET.

    Returns:
        Statements in execution order.
    """
    policies = POLICY_SET if policy_set is None else policy_set
    statements = [session_tenant_function_sql(session_variable)]
    for table in sorted(policies):
        statements.extend(policies[table].statements())
    return statements


def drop_policy_set_statements(policy_set: Mapping[str, TenantPolicy] | None = None) -> list[str]:
    """Build the DDL that removes the policy set, function last."""
    policies = POLICY_SET if policy_set is None else policy_set
    statements: list[str] = []
    for table in sorted(policies):
        statements.extend(policies[table].drop_statements())
    statements.append(f"DROP FUNCTION IF EXISTS {SESSION_TENANT_FUNCTION}()")
    return statements


async def apply_policy_set(
    conn: AsyncConnection,
    session_variable: str = DEFAULT_SESSION_VARIABLE,
    policy_set: Mapping[str, TenantPolicy] | None = None,
) -> None:
    """Install the session tenant function and all table policies.

    Args:
        conn: Connection with ownership of the tenant-scoped tables.
        session_variable: Qualified setting name holding the binding.
        policy_set: Policies to install. Defaults to POLICY_SET.
    """
    for statement in policy_set_statements(session_variable, policy_set):
        await conn.execute(text(statement))

    logger.info(
        "Row-level security policy set applied to %d tables",
        len(POLICY_SET if policy_set is None else policy_set),
    )


async def drop_policy_set(
    conn: AsyncConnection,
    policy_set: Mapping[str, TenantPolicy] | None = None,
) -> None:
    """Remove all table policies and the session tenant function."""
    for statement in drop_policy_set_statements(policy_set):
        await conn.execute(text(statement))
