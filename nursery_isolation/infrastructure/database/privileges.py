# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Privilege model for the application database role.

Row-level security does not apply to superusers or to roles with the
BYPASSRLS attribute. The application therefore connects as a dedicated
role that has neither, holds DML on the tenant-scoped tables and read
access to the tenant registry, and nothing else.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from nursery_isolation.domains.tenancy.errors import MisconfiguredPrivilege
from nursery_isolation.infrastructure.database.policies import POLICY_SET, SESSION_TENANT_FUNCTION

logger = logging.getLogger(__name__)

_ROLE_NAME = re.compile(r"^[a-z_][a-z0-9_]{0,62}$")

_CURRENT_ROLE = text(
    "SELECT rolname, rolsuper, rolbypassrls FROM pg_roles WHERE rolname = current_user"
)
_NAMED_ROLE = text("SELECT rolname, rolsuper, rolbypassrls FROM pg_roles WHERE rolname = :role")


@dataclass(frozen=True)
class RolePrivileges:
    """Security-relevant attributes of a database role.

    Attributes:
        rolname: Role name.
        rolsuper: Role is a superuser.
        rolbypassrls: Role bypasses row-level security.
    """

    rolname: str
    rolsuper: bool
    rolbypassrls: bool

    @property
    def is_safe(self) -> bool:
        """Whether row-level security applies to this role."""
        return not (self.rolsuper or self.rolbypassrls)


def quote_identifier(name: str) -> str:
    """Validate and double-quote a role, schema or table name.

    Raises:
        ValueError: If name is not a plain lower-case identifier.
    """
    if not _ROLE_NAME.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return f'"{name}"'


def _quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


async def fetch_role_privileges(
    conn: AsyncConnection | AsyncSession,
    role: Optional[str] = None,
) -> RolePrivileges:
    """Read the privilege attributes of a role.

    Args:
        conn: Open connection or session.
        role: Role to inspect. Defaults to the connecting role.

    Returns:
        The role's privilege attributes.

    Raises:
        LookupError: If the role does not exist.
    """
    if role is None:
        result = await conn.execute(_CURRENT_ROLE)
    else:
        result = await conn.execute(_NAMED_ROLE, {"role": role})

    row = result.one_or_none()
    if row is None:
        raise LookupError(f"Role '{role or 'current_user'}' does not exist")

    return RolePrivileges(
        rolname=row.rolname,
        rolsuper=bool(row.rolsuper),
        rolbypassrls=bool(row.rolbypassrls),
    )


def ensure_role_safe(privileges: RolePrivileges) -> RolePrivileges:
    """Refuse a role that row-level security does not apply to.

    Raises:
        MisconfiguredPrivilege: If the role is a superuser or has BYPASSRLS.
    """
    if not privileges.is_safe:
        raise MisconfiguredPrivilege(
            privileges.rolname,
            superuser=privileges.rolsuper,
            bypass_rls=privileges.rolbypassrls,
        )
    return privileges


async def check_connection_role(conn: AsyncConnection | AsyncSession) -> RolePrivileges:
    """Fetch the connecting role and refuse it if it bypasses isolation."""
    return ensure_role_safe(await fetch_role_privileges(conn))


def provision_statements(
    role: str,
    password: Optional[str] = None,
    schema: str = "public",
    tables: Optional[Iterable[str]] = None,
) -> list[str]:
    """Build the DDL that creates or repairs the application role.

    The statements are idempotent. An existing role is stripped of
    SUPERUSER and BYPASSRLS.

    Args:
        role: Application role name.
        password: Login password; left unchanged when None.
        schema: Schema holding the tables.
        tables: Tenant-scoped tables to grant DML on. Defaults to the policy set.

    Returns:
        Statements in execution order.
    """
    quoted = quote_identifier(role)
    scoped = sorted(POLICY_SET if tables is None else tables)
    table_list = ", ".join(f"{quote_identifier(schema)}.{quote_identifier(t)}" for t in scoped)

    statements = [
        (
            "DO $$ BEGIN "
            f"CREATE ROLE {quoted} LOGIN NOSUPERUSER NOBYPASSRLS; "
            "EXCEPTION WHEN duplicate_object THEN NULL; "
            "END $$"
        ),
        f"ALTER ROLE {quoted} WITH LOGIN NOSUPERUSER NOBYPASSRLS NOCREATEDB NOCREATEROLE",
    ]
    if password is not None:
        statements.append(f"ALTER ROLE {quoted} WITH PASSWORD {_quote_literal(password)}")

    statements.append(f"GRANT USAGE ON SCHEMA {quote_identifier(schema)} TO {quoted}")
    if table_list:
        statements.append(f"GRANT SELECT, INSERT, UPDATE, DELETE ON TABLE {table_list} TO {quoted}")
    statements.extend(
        [
            f"GRANT SELECT ON TABLE {quote_identifier(schema)}.{quote_identifier('tenants')} TO {quoted}",
            f"GRANT EXECUTE ON FUNCTION {SESSION_TENANT_FUNCTION}() TO {quoted}",
        ]
    )
    return statements


async def provision_app_role(
    conn: AsyncConnection,
    role: str,
    password: Optional[str] = None,
    schema: str = "public",
    tables: Optional[Iterable[str]] = None,
) -> RolePrivileges:
    """Create or repair the application role and verify it.

    Args:
        conn: Connection of an administrative role.
        role: Application role name.
        password: Login password; left unchanged when None.
        schema: Schema holding the tables.
        tables: Tenant-scoped tables. Defaults to the policy set.

    Returns:
        The role's privileges after provisioning.

    Raises:
        MisconfiguredPrivilege: If the role still bypasses isolation.
    """
    for statement in provision_statements(role, password, schema, tables):
        # Plain DDL without bind parameters.
        await conn.exec_driver_sql(statement)

    privileges = ensure_role_safe(await fetch_role_privileges(conn, role))
    logger.info("Application role %s provisioned", role)
    return privileges
