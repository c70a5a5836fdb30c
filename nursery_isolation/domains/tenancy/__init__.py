# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant scoping domain.

Exports:
    TenantContext: Explicit tenant scope passed into every storage call.
    TenantContextResolver: Derives tenant context from signed credentials.
    IsolationError and subclasses: Isolation failure taxonomy.
"""

from nursery_isolation.domains.tenancy.context import (
    TenantContext,
    TenantContextResolver,
    parse_tenant_id,
)
from nursery_isolation.domains.tenancy.errors import (
    IsolationError,
    MisconfiguredPrivilege,
    MissingTenantClaim,
    PolicyViolation,
    StaleBinding,
    TenantInactive,
    TenantMismatch,
    Unauthenticated,
    UnscopedSessionError,
)

__all__ = [
    "TenantContext",
    "TenantContextResolver",
    "parse_tenant_id",
    "IsolationError",
    "MisconfiguredPrivilege",
    "MissingTenantClaim",
    "PolicyViolation",
    "StaleBinding",
    "TenantInactive",
    "TenantMismatch",
    "Unauthenticated",
    "UnscopedSessionError",
]
