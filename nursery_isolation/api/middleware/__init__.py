# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware components.

This package provides middleware for request processing:
- AuthMiddleware: JWT authentication.
- TenantContextMiddleware: Request-scoped log context for the resolved tenant.

Exports:
    AuthMiddleware: JWT authentication middleware.
    TenantContextMiddleware: Tenant log context middleware.
"""

from nursery_isolation.api.middleware.auth import AuthMiddleware
from nursery_isolation.api.middleware.tenant import TenantContextMiddleware

__all__ = [
    "AuthMiddleware",
    "TenantContextMiddleware",
]
