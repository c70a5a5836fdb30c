# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial nursery schema.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2025-01-06

Creates the tenant registry and every tenant-scoped table. Cross-table
references between tenant-scoped tables are composite (tenant_id, id)
foreign keys. Row-level security is added by 002_tenant_isolation.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("gen_random_uuid()"),
        primary_key=True,
    )


def _tenant_id() -> sa.Column:
    return sa.Column(
        "tenant_id",
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey("tenants.id", ondelete="RESTRICT"),
        nullable=False,
    )


def _uuid(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), nullable=nullable)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def _tenant_fk(columns: list[str], table: str, ondelete: str = "CASCADE") -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint(
        ["tenant_id", *columns],
        [f"{table}.tenant_id", f"{table}.id"],
        ondelete=ondelete,
    )


def upgrade() -> None:
    """Create the tenant registry and tenant-scoped tables."""
    # ==========================================================================
    # 1. tenants (registry, not tenant-scoped)
    # ==========================================================================
    op.create_table(
        "tenants",
        _id(),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("subdomain", sa.String(63), unique=True, nullable=False),
        sa.Column("primary_color", sa.String(7), nullable=False, server_default=sa.text("'#000000'")),
        sa.Column("secondary_color", sa.String(7), nullable=False, server_default=sa.text("'#000000'")),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        *_timestamps(),
    )

    # ==========================================================================
    # 2. users, rooms, children
    # ==========================================================================
    op.create_table(
        "users",
        _id(),
        _tenant_id(),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("magic_link_token_hash", sa.String(64), nullable=True),
        sa.Column("magic_link_expiry", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "id"),
        sa.UniqueConstraint("tenant_id", "email"),
    )

    op.create_table(
        "rooms",
        _id(),
        _tenant_id(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("capacity", sa.Integer, nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "id"),
    )

    op.create_table(
        "children",
        _id(),
        _tenant_id(),
        _uuid("room_id", nullable=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("gender", sa.String(10), nullable=False),
        sa.Column("date_of_birth", sa.Date, nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'ACTIVE'")),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "id"),
        _tenant_fk(["room_id"], "rooms", ondelete="RESTRICT"),
    )

    # ==========================================================================
    # 3. care records
    # ==========================================================================
    op.create_table(
        "daily_logs",
        _id(),
        _tenant_id(),
        _uuid("child_id"),
        _uuid("author_id"),
        sa.Column("log_type", sa.String(30), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        sa.Column("logged_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        *_timestamps(),
        _tenant_fk(["child_id"], "children"),
        _tenant_fk(["author_id"], "users", ondelete="RESTRICT"),
    )

    op.create_table(
        "attendance_records",
        _id(),
        _tenant_id(),
        _uuid("child_id"),
        sa.Column("record_date", sa.Date, nullable=False),
        sa.Column("check_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("check_out_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "child_id", "record_date"),
        _tenant_fk(["child_id"], "children"),
    )

    # ==========================================================================
    # 4. billing
    # ==========================================================================
    op.create_table(
        "invoices",
        _id(),
        _tenant_id(),
        _uuid("child_id"),
        sa.Column("number", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'DRAFT'")),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("due_date", sa.Date, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "id"),
        sa.UniqueConstraint("tenant_id", "number"),
        _tenant_fk(["child_id"], "children", ondelete="RESTRICT"),
    )

    op.create_table(
        "invoice_items",
        _id(),
        _tenant_id(),
        _uuid("invoice_id"),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("quantity", sa.Numeric(10, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 2), nullable=False),
        _tenant_fk(["invoice_id"], "invoices"),
    )

    op.create_table(
        "payments",
        _id(),
        _tenant_id(),
        _uuid("invoice_id"),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("method", sa.String(20), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        *_timestamps(),
        _tenant_fk(["invoice_id"], "invoices", ondelete="RESTRICT"),
    )

    # ==========================================================================
    # 5. messaging
    # ==========================================================================
    op.create_table(
        "conversations",
        _id(),
        _tenant_id(),
        sa.Column("subject", sa.String(200), nullable=False),
        _uuid("child_id", nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "id"),
        _tenant_fk(["child_id"], "children", ondelete="RESTRICT"),
    )

    op.create_table(
        "messages",
        _id(),
        _tenant_id(),
        _uuid("conversation_id"),
        _uuid("sender_id"),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("attachment_url", sa.Text, nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _tenant_fk(["conversation_id"], "conversations"),
        _tenant_fk(["sender_id"], "users", ondelete="RESTRICT"),
    )

    op.create_table(
        "announcements",
        _id(),
        _tenant_id(),
        _uuid("author_id"),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text, nullable=False),
        sa.Column("priority", sa.String(10), nullable=False, server_default=sa.text("'NORMAL'")),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "id"),
        _tenant_fk(["author_id"], "users", ondelete="RESTRICT"),
    )

    op.create_table(
        "announcement_reads",
        _id(),
        _tenant_id(),
        _uuid("announcement_id"),
        _uuid("user_id"),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("tenant_id", "announcement_id", "user_id"),
        _tenant_fk(["announcement_id"], "announcements"),
        _tenant_fk(["user_id"], "users"),
    )

    # ==========================================================================
    # 6. audit
    # ==========================================================================
    op.create_table(
        "audit_logs",
        _id(),
        _tenant_id(),
        _uuid("user_id", nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("entity_type", sa.String(50), nullable=False),
        _uuid("entity_id", nullable=True),
        sa.Column("details", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        _tenant_fk(["user_id"], "users", ondelete="RESTRICT"),
    )

    for table in (
        "users",
        "rooms",
        "children",
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
    ):
        op.create_index(f"ix_{table}_tenant_id", table, ["tenant_id"])


def downgrade() -> None:
    """Drop all nursery tables."""
    op.drop_table("audit_logs")
    op.drop_table("announcement_reads")
    op.drop_table("announcements")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("payments")
    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_table("attendance_records")
    op.drop_table("daily_logs")
    op.drop_table("children")
    op.drop_table("rooms")
    op.drop_table("users")
    op.drop_table("tenants")
