# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for tenant-scoped units of work.

The database session is mocked; these tests pin the binding protocol
and the commit/rollback discipline. Enforcement itself is proven by
the integration suite against PostgreSQL.
"""

from typing import Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

from nursery_isolation.domains.tenancy import (
    PolicyViolation,
    StaleBinding,
    TenantContext,
    UnscopedSessionError,
)
from nursery_isolation.infrastructure.database.connection import DatabaseError
from nursery_isolation.infrastructure.database.tenant_session import (
    as_policy_violation,
    tenant_session,
    unscoped_session,
)

VARIABLE = "app.current_tenant"


class FakePGError(Exception):
    """Driver error carrying a SQLSTATE like asyncpg's exceptions."""

    def __init__(self, message: str, sqlstate: Optional[str]) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


def _rls_error(table: str = "children") -> ProgrammingError:
    orig = FakePGError(
        f'new row violates row-level security policy for table "{table}"',
        "42501",
    )
    return ProgrammingError(f"INSERT INTO {table} ...", {}, orig)


def _make_session(read_back: Optional[str]) -> AsyncMock:
    """Build a mocked AsyncSession whose read-back returns read_back."""
    session = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()

    async def execute(statement, params=None):
        result = MagicMock()
        if "current_setting" in str(statement):
            result.scalar_one_or_none.return_value = read_back
        return result

    session.execute.side_effect = execute
    return session


def _make_factory(session: AsyncMock) -> MagicMock:
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    factory.return_value.__aexit__.return_value = False
    return factory


class TestTenantSessionBinding:
    """Tests for binding the tenant to the transaction."""

    @pytest.mark.asyncio
    async def test_binds_transaction_locally_and_reads_back(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))

        async with tenant_session(tenant_a, _make_factory(session), VARIABLE) as db:
            assert db.tenant_id == tenant_a
            assert db.is_active

        bind_call, read_call = session.execute.await_args_list[:2]
        assert str(bind_call.args[0]) == "SELECT set_config(:name, :value, true)"
        assert bind_call.args[1] == {"name": VARIABLE, "value": str(tenant_a)}
        assert str(read_call.args[0]) == "SELECT current_setting(:name, true)"
        assert read_call.args[1] == {"name": VARIABLE}

    @pytest.mark.asyncio
    async def test_accepts_context_and_string(self, tenant_b: UUID) -> None:
        for tenant in (TenantContext.for_tenant(tenant_b), str(tenant_b)):
            session = _make_session(str(tenant_b))

            async with tenant_session(tenant, _make_factory(session), VARIABLE) as db:
                assert db.tenant_id == tenant_b

    @pytest.mark.asyncio
    async def test_mismatched_read_back_is_stale_binding(
        self,
        tenant_a: UUID,
        tenant_b: UUID,
    ) -> None:
        session = _make_session(str(tenant_b))
        body = MagicMock()

        with pytest.raises(StaleBinding) as exc_info:
            async with tenant_session(tenant_a, _make_factory(session), VARIABLE):
                body()

        body.assert_not_called()
        assert exc_info.value.expected == str(tenant_a)
        assert exc_info.value.actual == str(tenant_b)
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_read_back_is_stale_binding(self, tenant_a: UUID) -> None:
        session = _make_session("")

        with pytest.raises(StaleBinding) as exc_info:
            async with tenant_session(tenant_a, _make_factory(session), VARIABLE):
                pass

        assert exc_info.value.actual is None

    @pytest.mark.asyncio
    async def test_current_binding_reports_tenant(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))

        async with tenant_session(tenant_a, _make_factory(session), VARIABLE) as db:
            assert await db.current_binding() == str(tenant_a)

    @pytest.mark.asyncio
    async def test_invalid_tenant_string_is_rejected(self) -> None:
        factory = MagicMock()

        with pytest.raises(ValueError):
            async with tenant_session("nursery-a", factory, VARIABLE):
                pass

        factory.assert_not_called()


class TestTenantSessionLifecycle:
    """Tests for commit, rollback and handle release."""

    @pytest.mark.asyncio
    async def test_commits_on_success(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))

        async with tenant_session(tenant_a, _make_factory(session), VARIABLE) as db:
            db.add(object())

        session.commit.assert_awaited_once()
        session.rollback.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rolls_back_on_exception(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))

        with pytest.raises(RuntimeError, match="boom"):
            async with tenant_session(tenant_a, _make_factory(session), VARIABLE):
                raise RuntimeError("boom")

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_handle_is_unusable_after_exit(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))

        async with tenant_session(tenant_a, _make_factory(session), VARIABLE) as db:
            pass

        assert not db.is_active
        with pytest.raises(UnscopedSessionError):
            await db.execute(text("SELECT 1"))
        with pytest.raises(UnscopedSessionError):
            db.add(object())

    @pytest.mark.asyncio
    async def test_handle_is_released_after_failure(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))

        with pytest.raises(RuntimeError):
            async with tenant_session(tenant_a, _make_factory(session), VARIABLE) as db:
                raise RuntimeError("boom")

        assert not db.is_active

    @pytest.mark.asyncio
    async def test_other_database_error_is_wrapped(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))
        session.commit.side_effect = OperationalError("COMMIT", {}, FakePGError("gone", "08006"))

        with pytest.raises(DatabaseError):
            async with tenant_session(tenant_a, _make_factory(session), VARIABLE):
                pass

        session.rollback.assert_awaited_once()


class TestPolicyViolations:
    """Tests for surfacing policy rejections."""

    @pytest.mark.asyncio
    async def test_rejected_flush_raises_policy_violation(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))
        session.flush.side_effect = _rls_error("children")

        with pytest.raises(PolicyViolation) as exc_info:
            async with tenant_session(tenant_a, _make_factory(session), VARIABLE) as db:
                db.add(object())
                await db.flush()

        assert exc_info.value.table == "children"
        assert exc_info.value.original_error is not None
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejected_commit_raises_policy_violation(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))
        session.commit.side_effect = _rls_error("invoices")

        with pytest.raises(PolicyViolation) as exc_info:
            async with tenant_session(tenant_a, _make_factory(session), VARIABLE):
                pass

        assert exc_info.value.table == "invoices"

    @pytest.mark.asyncio
    async def test_write_matching_no_row_raises(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))

        async def execute(statement, params=None):
            result = MagicMock()
            result.scalar_one_or_none.return_value = str(tenant_a)
            result.rowcount = 0
            return result

        session.execute.side_effect = execute

        with pytest.raises(PolicyViolation, match="matched no row visible"):
            async with tenant_session(tenant_a, _make_factory(session), VARIABLE) as db:
                await db.execute_write(text("UPDATE children SET first_name = 'x'"), table="children")

        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_write_returns_row_count(self, tenant_a: UUID) -> None:
        session = _make_session(str(tenant_a))

        async def execute(statement, params=None):
            result = MagicMock()
            result.scalar_one_or_none.return_value = str(tenant_a)
            result.rowcount = 2
            return result

        session.execute.side_effect = execute

        async with tenant_session(tenant_a, _make_factory(session), VARIABLE) as db:
            affected = await db.execute_write(text("DELETE FROM rooms"))

        assert affected == 2


class TestAsPolicyViolation:
    """Tests for as_policy_violation."""

    def test_translates_rls_rejection(self) -> None:
        violation = as_policy_violation(_rls_error("guardians"))

        assert isinstance(violation, PolicyViolation)
        assert violation.table == "guardians"

    def test_ignores_other_sqlstate(self) -> None:
        orig = FakePGError(
            'new row violates row-level security policy for table "children"',
            "23505",
        )

        assert as_policy_violation(IntegrityError("INSERT", {}, orig)) is None

    def test_ignores_plain_permission_error(self) -> None:
        orig = FakePGError("permission denied for table children", "42501")

        assert as_policy_violation(ProgrammingError("SELECT", {}, orig)) is None

    def test_matches_message_without_sqlstate(self) -> None:
        orig = FakePGError(
            'new row violates row-level security policy for table "rooms"',
            None,
        )

        violation = as_policy_violation(ProgrammingError("INSERT", {}, orig))

        assert violation is not None
        assert violation.table == "rooms"


class TestUnscopedSession:
    """Tests for unscoped_session."""

    @pytest.mark.asyncio
    async def test_binds_empty_tenant_and_rolls_back(self) -> None:
        session = _make_session(None)

        async with unscoped_session(_make_factory(session), VARIABLE) as db:
            assert db is session

        bind_call = session.execute.await_args_list[0]
        assert bind_call.args[1] == {"name": VARIABLE, "value": ""}
        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()
