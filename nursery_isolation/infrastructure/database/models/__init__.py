# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models for the nursery platform.

Example:
    from nursery_isolation.infrastructure.database.models import Child, tenant_scoped_tables

    tenant_scoped_tables()  # ("announcement_reads", "announcements", ...)
"""

from nursery_isolation.infrastructure.database.models.base import (
    TENANT_COLUMN,
    Base,
    TenantScopedMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from nursery_isolation.infrastructure.database.models.nursery import (
    Announcement,
    AnnouncementRead,
    AttendanceRecord,
    AuditLog,
    Child,
    Conversation,
    DailyLog,
    Invoice,
    InvoiceItem,
    Message,
    Payment,
    Room,
    User,
)
from nursery_isolation.infrastructure.database.models.tenant import Tenant


def tenant_scoped_tables() -> tuple[str, ...]:
    """Return the names of all tables mapped by a tenant-scoped model.

    Returns:
        Sorted table names.
    """
    names = {
        mapper.local_table.name
        for mapper in Base.registry.mappers
        if issubclass(mapper.class_, TenantScopedMixin)
    }
    return tuple(sorted(names))


__all__ = [
    # Base
    "Base",
    "TENANT_COLUMN",
    "TenantScopedMixin",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "tenant_scoped_tables",
    # Registry
    "Tenant",
    # Tenant-scoped
    "Announcement",
    "AnnouncementRead",
    "AttendanceRecord",
    "AuditLog",
    "Child",
    "Conversation",
    "DailyLog",
    "Invoice",
    "InvoiceItem",
    "Message",
    "Payment",
    "Room",
    "User",
]
