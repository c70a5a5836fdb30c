# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Alembic revisions against a scratch PostgreSQL database.

The rest of the suite builds its schema from the models; this module
builds it from the revisions instead, so the hand-written migrations are
checked against the models and the policy set they are meant to install.

Alembic drives its own event loop, so these tests are synchronous.
"""

import asyncio
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, pool, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine

from nursery_isolation.infrastructure.database.models import Base
from nursery_isolation.infrastructure.database.policies import POLICY_SET
from nursery_isolation.infrastructure.database.privileges import (
    provision_app_role,
    quote_identifier,
)
from nursery_isolation.infrastructure.database.verification import (
    VerificationReport,
    verify_isolation,
)

pytestmark = pytest.mark.integration

MIGRATIONS = Path(__file__).resolve().parents[3] / "nursery_isolation/infrastructure/database/migrations"

_POLICY_COUNT = text("SELECT count(*) FROM pg_policies WHERE policyname = 'tenant_isolation'")


def _with_database(url: str, database: str) -> str:
    return make_url(url).set(database=database).render_as_string(hide_password=False)


def _alembic_config() -> Config:
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS))
    return config


async def _recreate_database(admin_url: str, name: str, drop_only: bool = False) -> None:
    engine = create_async_engine(admin_url, isolation_level="AUTOCOMMIT", poolclass=pool.NullPool)
    try:
        async with engine.connect() as conn:
            await conn.exec_driver_sql(f"DROP DATABASE IF EXISTS {quote_identifier(name)} WITH (FORCE)")
            if not drop_only:
                await conn.exec_driver_sql(f"CREATE DATABASE {quote_identifier(name)}")
    finally:
        await engine.dispose()


async def _schema_columns(url: str) -> dict[str, set[str]]:
    engine = create_async_engine(url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as conn:
            return await conn.run_sync(
                lambda sync_conn: {
                    name: {column["name"] for column in inspect(sync_conn).get_columns(name)}
                    for name in inspect(sync_conn).get_table_names()
                    if name != "alembic_version"
                }
            )
    finally:
        await engine.dispose()


async def _policy_count(url: str) -> int:
    engine = create_async_engine(url, poolclass=pool.NullPool)
    try:
        async with engine.connect() as conn:
            return (await conn.execute(_POLICY_COUNT)).scalar_one()
    finally:
        await engine.dispose()


async def _provision_and_verify(admin_url: str, app_url: str, role: str, password: str) -> VerificationReport:
    admin = create_async_engine(admin_url, poolclass=pool.NullPool)
    try:
        async with admin.begin() as conn:
            await provision_app_role(conn, role, password=password)
    finally:
        await admin.dispose()

    app = create_async_engine(app_url, poolclass=pool.NullPool)
    try:
        async with app.connect() as conn:
            return await verify_isolation(conn)
    finally:
        await app.dispose()


@pytest.fixture
def scratch_urls(database_urls: tuple[str, str], monkeypatch: pytest.MonkeyPatch):
    """Fresh database for the revisions; yields (admin_url, app_url)."""
    admin_url, app_url = database_urls
    name = f"{make_url(admin_url).database}_migrations"

    asyncio.run(_recreate_database(admin_url, name))
    scratch_admin = _with_database(admin_url, name)
    monkeypatch.setenv("MIGRATION_DB_URL", scratch_admin)
    try:
        yield scratch_admin, _with_database(app_url, name)
    finally:
        asyncio.run(_recreate_database(admin_url, name, drop_only=True))


def test_upgrade_head_matches_models(scratch_urls: tuple[str, str]) -> None:
    command.upgrade(_alembic_config(), "head")

    columns = asyncio.run(_schema_columns(scratch_urls[0]))

    expected = {
        name: {column.name for column in table.columns}
        for name, table in Base.metadata.tables.items()
    }
    assert columns == expected


def test_upgrade_head_passes_isolation_verification(scratch_urls: tuple[str, str]) -> None:
    admin_url, app_url = scratch_urls
    app = make_url(app_url)

    command.upgrade(_alembic_config(), "head")
    report = asyncio.run(_provision_and_verify(admin_url, app_url, app.username, app.password))

    assert report.passed, report.failures()
    assert report.role.is_safe
    assert {status.table for status in report.tables} == set(POLICY_SET)


def test_downgrade_removes_policies_then_schema(scratch_urls: tuple[str, str]) -> None:
    admin_url = scratch_urls[0]
    config = _alembic_config()

    command.upgrade(config, "head")
    assert asyncio.run(_policy_count(admin_url)) == len(POLICY_SET)

    command.downgrade(config, "001_initial_schema")
    assert asyncio.run(_policy_count(admin_url)) == 0

    command.downgrade(config, "base")
    assert asyncio.run(_schema_columns(admin_url)) == {}
