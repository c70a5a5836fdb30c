"""Nursery platform tenant isolation core.

Row-level multi-tenant data isolation enforced in PostgreSQL: tenant
resolution from signed credentials, transaction-scoped tenant binding,
row-level security policies and the verification harness that proves them.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
