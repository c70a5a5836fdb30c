# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication domain services.

This module provides signed credential handling:
- JWT access tokens for staff and parents
- Magic link tokens for passwordless parent login (see magic_link)

Exports:
    JWTManager: JWT token creation and validation.
"""

from nursery_isolation.domains.auth.jwt import (
    InvalidTokenError,
    JWTError,
    JWTManager,
    TokenExpiredError,
    TokenPayload,
)

__all__ = [
    "JWTManager",
    "JWTError",
    "InvalidTokenError",
    "TokenExpiredError",
    "TokenPayload",
]
