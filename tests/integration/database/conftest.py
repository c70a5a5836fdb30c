# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Fixtures for the PostgreSQL isolation suite.

TEST_DATABASE_URL must point at a disposable database and connect as an
administrative role (normally the postgres superuser). The suite:

- recreates the schema and applies the policy set as that role;
- provisions the low-privilege role rls_internal_test;
- seeds tenants A and B, each with one child, through tenant-bound
  sessions of the low-privilege role.

Every test then connects as rls_internal_test, so policies apply.
"""

import asyncio
import os
from datetime import date
from typing import AsyncIterator
from uuid import UUID

import pytest
import pytest_asyncio
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from nursery_isolation.infrastructure.database.connection import (
    create_engine,
    create_sessionmaker,
)
from nursery_isolation.infrastructure.database.models import Base, Child, Tenant
from nursery_isolation.infrastructure.database.policies import (
    DEFAULT_SESSION_VARIABLE,
    apply_policy_set,
)
from nursery_isolation.infrastructure.database.privileges import provision_app_role
from nursery_isolation.infrastructure.database.tenant_session import tenant_session

TENANT_A = UUID("11111111-1111-1111-1111-111111111111")
TENANT_B = UUID("22222222-2222-2222-2222-222222222222")
CHILD_A = UUID("00000000-0000-0000-0000-000000000001")
CHILD_B = UUID("00000000-0000-0000-0000-000000000002")

TEST_ROLE = "rls_internal_test"
TEST_ROLE_PASSWORD = "rls_internal_test"


def _admin_url() -> str:
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL is not set")
    return url


def _app_url(admin_url: str) -> str:
    url = make_url(admin_url).set(username=TEST_ROLE, password=TEST_ROLE_PASSWORD)
    return url.render_as_string(hide_password=False)


async def _prepare(admin_url: str, app_url: str) -> None:
    admin = create_engine(admin_url, pool_size=1, max_overflow=0)
    try:
        async with admin.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
            await apply_policy_set(conn, DEFAULT_SESSION_VARIABLE)
            await provision_app_role(conn, TEST_ROLE, password=TEST_ROLE_PASSWORD)

        async with admin.begin() as conn:
            await conn.execute(
                Tenant.__table__.insert(),
                [
                    {"id": TENANT_A, "name": "Nursery A", "subdomain": "nursery-a"},
                    {"id": TENANT_B, "name": "Nursery B", "subdomain": "nursery-b"},
                ],
            )
    finally:
        await admin.dispose()

    app = create_engine(app_url, pool_size=1, max_overflow=0)
    sessionmaker = create_sessionmaker(app)
    try:
        for tenant_id, child_id, name in ((TENANT_A, CHILD_A, "Alice"), (TENANT_B, CHILD_B, "Ben")):
            async with tenant_session(tenant_id, sessionmaker, DEFAULT_SESSION_VARIABLE) as db:
                db.add(
                    Child(
                        id=child_id,
                        tenant_id=tenant_id,
                        first_name=name,
                        last_name="Seed",
                        gender="F",
                        date_of_birth=date(2021, 3, 1),
                        start_date=date(2023, 9, 1),
                    )
                )
    finally:
        await app.dispose()


@pytest.fixture(scope="session")
def database_urls() -> tuple[str, str]:
    """Prepare the schema and seeds once; return (admin_url, app_url)."""
    admin_url = _admin_url()
    app_url = _app_url(admin_url)
    try:
        asyncio.run(_prepare(admin_url, app_url))
    except (OSError, SQLAlchemyError) as e:
        pytest.skip(f"PostgreSQL not available at TEST_DATABASE_URL: {e}")
    return admin_url, app_url


@pytest_asyncio.fixture
async def app_engine(database_urls: tuple[str, str]) -> AsyncIterator[AsyncEngine]:
    """Engine connecting as the low-privilege test role."""
    engine = create_engine(database_urls[1], pool_size=2, max_overflow=0)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def admin_engine(database_urls: tuple[str, str]) -> AsyncIterator[AsyncEngine]:
    """Engine connecting as the administrative fixture role."""
    engine = create_engine(database_urls[0], pool_size=1, max_overflow=0)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessionmaker(app_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_sessionmaker(app_engine)


@pytest.fixture
def child_a() -> UUID:
    return CHILD_A


@pytest.fixture
def child_b() -> UUID:
    return CHILD_B


@pytest.fixture
def session_variable() -> str:
    return DEFAULT_SESSION_VARIABLE
