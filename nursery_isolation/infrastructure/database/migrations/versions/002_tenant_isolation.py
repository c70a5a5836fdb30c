# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant isolation policy set.

Revision ID: 002_tenant_isolation
Revises: 001_initial_schema
Create Date: 2025-01-08

Creates current_session_tenant() and enables, forces and attaches the
tenant_isolation policy on every tenant-scoped table. The policy set is
validated against the models when it is imported.
"""

from typing import Sequence, Union

from alembic import op

from nursery_isolation.core.config import get_settings
from nursery_isolation.infrastructure.database.policies import (
    drop_policy_set_statements,
    policy_set_statements,
)

revision: str = "002_tenant_isolation"
down_revision: Union[str, None] = "001_initial_schema"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Install the session tenant function and all tenant policies."""
    session_variable = get_settings().tenancy.session_variable
    for statement in policy_set_statements(session_variable):
        op.execute(statement)


def downgrade() -> None:
    """Remove all tenant policies and the session tenant function."""
    for statement in drop_policy_set_statements():
        op.execute(statement)
