# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure: pooled engine, tenant-bound sessions and the
row-level security layer that enforces tenant isolation.

Example:
    from nursery_isolation.infrastructure.database import tenant_session

    async with tenant_session(context) as db:
        rooms = (await db.scalars(select(Room))).all()
"""

from nursery_isolation.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    close_database,
    create_engine,
    create_sessionmaker,
    get_engine,
    get_sessionmaker,
    init_database,
)
from nursery_isolation.infrastructure.database.policies import (
    POLICY_NAME,
    POLICY_SET,
    REQUIRED_TABLES,
    SESSION_TENANT_FUNCTION,
    PolicyDriftError,
    TenantPolicy,
    apply_policy_set,
    drop_policy_set,
    policy_set_statements,
    validate_against_metadata,
)
from nursery_isolation.infrastructure.database.privileges import (
    RolePrivileges,
    check_connection_role,
    ensure_role_safe,
    fetch_role_privileges,
    provision_app_role,
)
from nursery_isolation.infrastructure.database.tenant_session import (
    TenantScopedSession,
    tenant_session,
    unscoped_session,
)
from nursery_isolation.infrastructure.database.verification import (
    TableSecurityStatus,
    VerificationReport,
    find_unregistered_tables,
    inspect_tables,
    verify_isolation,
)

__all__ = [
    # Connection
    "DatabaseError",
    "check_database_connection",
    "close_database",
    "create_engine",
    "create_sessionmaker",
    "get_engine",
    "get_sessionmaker",
    "init_database",
    # Policies
    "POLICY_NAME",
    "POLICY_SET",
    "REQUIRED_TABLES",
    "SESSION_TENANT_FUNCTION",
    "PolicyDriftError",
    "TenantPolicy",
    "apply_policy_set",
    "drop_policy_set",
    "policy_set_statements",
    "validate_against_metadata",
    # Privileges
    "RolePrivileges",
    "check_connection_role",
    "ensure_role_safe",
    "fetch_role_privileges",
    "provision_app_role",
    # Sessions
    "TenantScopedSession",
    "tenant_session",
    "unscoped_session",
    # Verification
    "TableSecurityStatus",
    "VerificationReport",
    "find_unregistered_tables",
    "inspect_tables",
    "verify_isolation",
]
