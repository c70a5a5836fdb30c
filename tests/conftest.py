# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests
- Integration tests
"""

from unittest.mock import MagicMock
from uuid import UUID

import pytest
from pydantic import SecretStr

from nursery_isolation.domains.auth.jwt import JWTManager
from nursery_isolation.domains.tenancy import TenantContextResolver

# Seed tenants and children shared by the isolation tests.
TENANT_A = UUID("11111111-1111-1111-1111-111111111111")
TENANT_B = UUID("22222222-2222-2222-2222-222222222222")
CHILD_A = UUID("00000000-0000-0000-0000-000000000001")
CHILD_B = UUID("00000000-0000-0000-0000-000000000002")


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires PostgreSQL)"
    )


# =============================================================================
# Auth Fixtures
# =============================================================================


@pytest.fixture
def jwt_settings() -> MagicMock:
    """Create mock JWT settings."""
    settings = MagicMock()
    settings.secret_key = SecretStr("test-secret-key-for-jwt-testing")
    settings.algorithm = "HS256"
    settings.access_token_expire_minutes = 30
    settings.magic_link_expire_minutes = 15
    return settings


@pytest.fixture
def jwt_manager(jwt_settings: MagicMock) -> JWTManager:
    """Create JWT manager with test settings."""
    return JWTManager(jwt_settings)


@pytest.fixture
def resolver(jwt_manager: JWTManager) -> TenantContextResolver:
    """Create a tenant resolver over the test JWT manager."""
    return TenantContextResolver(jwt_manager)


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def tenant_a() -> UUID:
    """Provide the first seed tenant ID."""
    return TENANT_A


@pytest.fixture
def tenant_b() -> UUID:
    """Provide the second seed tenant ID."""
    return TENANT_B
