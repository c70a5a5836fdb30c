# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant-scoped nursery models.

Every table in this module carries tenant_id and is covered by the
row-level security policy set. Columns are limited to what the isolation
core, its seeds and its tests need; feature modules extend them through
migrations.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKeyConstraint,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from nursery_isolation.infrastructure.database.models.base import (
    Base,
    TenantScopedMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


def _tenant_fk(columns: list[str], table: str, ondelete: str = "CASCADE") -> ForeignKeyConstraint:
    """Composite foreign key that pins the referenced row to the same tenant."""
    return ForeignKeyConstraint(
        ["tenant_id", *columns],
        [f"{table}.tenant_id", f"{table}.id"],
        ondelete=ondelete,
    )


class User(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    """Staff member or parent of a nursery."""

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "id"),
        UniqueConstraint("tenant_id", "email"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    magic_link_token_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    magic_link_expiry: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )


class Room(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    """Nursery room children are assigned to."""

    __tablename__ = "rooms"
    __table_args__ = (UniqueConstraint("tenant_id", "id"),)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("0"))


class Child(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    """Child enrolled at a nursery."""

    __tablename__ = "children"
    __table_args__ = (
        UniqueConstraint("tenant_id", "id"),
        _tenant_fk(["room_id"], "rooms", ondelete="RESTRICT"),
    )

    room_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    gender: Mapped[str] = mapped_column(String(10), nullable=False)
    date_of_birth: Mapped[date] = mapped_column(Date, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default=text("'ACTIVE'")
    )


class DailyLog(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    """Care log entry (meal, nap, nappy, activity) for a child."""

    __tablename__ = "daily_logs"
    __table_args__ = (
        _tenant_fk(["child_id"], "children"),
        _tenant_fk(["author_id"], "users", ondelete="RESTRICT"),
    )

    child_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    author_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    log_type: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    logged_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class AttendanceRecord(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    """Daily check-in and check-out of a child."""

    __tablename__ = "attendance_records"
    __table_args__ = (
        UniqueConstraint("tenant_id", "child_id", "record_date"),
        _tenant_fk(["child_id"], "children"),
    )

    child_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    record_date: Mapped[date] = mapped_column(Date, nullable=False)
    check_in_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)


class Invoice(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    """Fee invoice for a child."""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "id"),
        UniqueConstraint("tenant_id", "number"),
        _tenant_fk(["child_id"], "children", ondelete="RESTRICT"),
    )

    child_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    number: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, server_default=text("'DRAFT'")
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, server_default=text("0")
    )
    due_date: Mapped[date] = mapped_column(Date, nullable=False)


class InvoiceItem(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    """Line item of an invoice."""

    __tablename__ = "invoice_items"
    __table_args__ = (_tenant_fk(["invoice_id"], "invoices"),)

    invoice_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)


class Payment(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    """Payment recorded against an invoice."""

    __tablename__ = "payments"
    __table_args__ = (_tenant_fk(["invoice_id"], "invoices", ondelete="RESTRICT"),)

    invoice_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class Conversation(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    """Message thread between staff and parents."""

    __tablename__ = "conversations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "id"),
        _tenant_fk(["child_id"], "children", ondelete="RESTRICT"),
    )

    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    child_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)


class Message(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    """Message within a conversation."""

    __tablename__ = "messages"
    __table_args__ = (
        _tenant_fk(["conversation_id"], "conversations"),
        _tenant_fk(["sender_id"], "users", ondelete="RESTRICT"),
    )

    conversation_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    sender_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    sent_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Announcement(UUIDPrimaryKeyMixin, TenantScopedMixin, TimestampMixin, Base):
    """Nursery-wide announcement to parents."""

    __tablename__ = "announcements"
    __table_args__ = (
        UniqueConstraint("tenant_id", "id"),
        _tenant_fk(["author_id"], "users", ondelete="RESTRICT"),
    )

    author_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(
        String(10), nullable=False, server_default=text("'NORMAL'")
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class AnnouncementRead(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    """Read receipt of an announcement by a user."""

    __tablename__ = "announcement_reads"
    __table_args__ = (
        UniqueConstraint("tenant_id", "announcement_id", "user_id"),
        _tenant_fk(["announcement_id"], "announcements"),
        _tenant_fk(["user_id"], "users"),
    )

    announcement_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    read_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class AuditLog(UUIDPrimaryKeyMixin, TenantScopedMixin, Base):
    """Audit trail entry for an action within a tenant."""

    __tablename__ = "audit_logs"
    __table_args__ = (_tenant_fk(["user_id"], "users", ondelete="RESTRICT"),)

    user_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(
        JSONB, nullable=False, server_default=text("'{}'::jsonb")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
