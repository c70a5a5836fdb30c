# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant registry model.

A tenant is one nursery organization. Tenants are never deleted in normal
operation; they are soft-disabled through is_active. The tenants table is
the registry itself and is not subject to row-level security; the
application role may only read it.
"""

from sqlalchemy import Boolean, String, text
from sqlalchemy.orm import Mapped, mapped_column

from nursery_isolation.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)


class Tenant(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Nursery organization."""

    __tablename__ = "tenants"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    subdomain: Mapped[str] = mapped_column(String(63), unique=True, nullable=False)
    primary_color: Mapped[str] = mapped_column(
        String(7), nullable=False, server_default=text("'#000000'")
    )
    secondary_color: Mapped[str] = mapped_column(
        String(7), nullable=False, server_default=text("'#000000'")
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default=text("true")
    )

    def __repr__(self) -> str:
        return f"<Tenant {self.subdomain} active={self.is_active}>"
