# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the application role privilege model."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from nursery_isolation.domains.tenancy import MisconfiguredPrivilege
from nursery_isolation.infrastructure.database.policies import POLICY_SET
from nursery_isolation.infrastructure.database.privileges import (
    RolePrivileges,
    check_connection_role,
    ensure_role_safe,
    fetch_role_privileges,
    provision_app_role,
    provision_statements,
    quote_identifier,
)


def _role_conn(rolname: str, rolsuper: bool = False, rolbypassrls: bool = False) -> AsyncMock:
    conn = AsyncMock()
    result = MagicMock()
    result.one_or_none.return_value = SimpleNamespace(
        rolname=rolname,
        rolsuper=rolsuper,
        rolbypassrls=rolbypassrls,
    )
    conn.execute.return_value = result
    return conn


class TestRolePrivileges:
    """Tests for RolePrivileges."""

    def test_plain_role_is_safe(self) -> None:
        assert RolePrivileges("nursery_app", False, False).is_safe

    @pytest.mark.parametrize("rolsuper,rolbypassrls", [(True, False), (False, True), (True, True)])
    def test_privileged_role_is_unsafe(self, rolsuper: bool, rolbypassrls: bool) -> None:
        assert not RolePrivileges("postgres", rolsuper, rolbypassrls).is_safe


class TestEnsureRoleSafe:
    """Tests for ensure_role_safe."""

    def test_returns_safe_role(self) -> None:
        privileges = RolePrivileges("nursery_app", False, False)

        assert ensure_role_safe(privileges) is privileges

    def test_superuser_is_refused(self) -> None:
        with pytest.raises(MisconfiguredPrivilege, match="SUPERUSER") as exc_info:
            ensure_role_safe(RolePrivileges("postgres", True, False))

        assert exc_info.value.role == "postgres"
        assert exc_info.value.superuser

    def test_bypassrls_is_refused(self) -> None:
        with pytest.raises(MisconfiguredPrivilege, match="BYPASSRLS"):
            ensure_role_safe(RolePrivileges("etl", False, True))


class TestQuoteIdentifier:
    """Tests for quote_identifier."""

    def test_quotes_plain_name(self) -> None:
        assert quote_identifier("nursery_app") == '"nursery_app"'

    @pytest.mark.parametrize("name", ['app"; drop role x; --', "App", "", "1role"])
    def test_rejects_unsafe_name(self, name: str) -> None:
        with pytest.raises(ValueError):
            quote_identifier(name)


class TestProvisionStatements:
    """Tests for provision_statements."""

    def test_creates_role_without_bypass_attributes(self) -> None:
        statements = provision_statements("nursery_app")

        assert "CREATE ROLE \"nursery_app\" LOGIN NOSUPERUSER NOBYPASSRLS" in statements[0]
        assert statements[1] == (
            'ALTER ROLE "nursery_app" WITH LOGIN NOSUPERUSER NOBYPASSRLS NOCREATEDB NOCREATEROLE'
        )

    def test_grants_dml_on_every_scoped_table(self) -> None:
        statements = provision_statements("nursery_app")
        grant = next(s for s in statements if s.startswith("GRANT SELECT, INSERT, UPDATE, DELETE"))

        for table in POLICY_SET:
            assert f'"public"."{table}"' in grant
        assert '"tenants"' not in grant

    def test_tenant_registry_is_read_only(self) -> None:
        statements = provision_statements("nursery_app")

        assert 'GRANT SELECT ON TABLE "public"."tenants" TO "nursery_app"' in statements
        assert 'GRANT EXECUTE ON FUNCTION current_session_tenant() TO "nursery_app"' in statements

    def test_password_is_escaped(self) -> None:
        statements = provision_statements("nursery_app", password="it's:secret")

        assert "ALTER ROLE \"nursery_app\" WITH PASSWORD 'it''s:secret'" in statements

    def test_no_password_statement_by_default(self) -> None:
        assert not any("PASSWORD" in s for s in provision_statements("nursery_app"))

    def test_custom_schema_and_tables(self) -> None:
        statements = provision_statements("api", schema="nursery", tables=["rooms", "children"])

        assert (
            'GRANT SELECT, INSERT, UPDATE, DELETE ON TABLE "nursery"."children", "nursery"."rooms" TO "api"'
            in statements
        )


class TestFetchRolePrivileges:
    """Tests for fetch_role_privileges."""

    @pytest.mark.asyncio
    async def test_reads_current_role(self) -> None:
        conn = _role_conn("nursery_app")

        privileges = await fetch_role_privileges(conn)

        assert privileges == RolePrivileges("nursery_app", False, False)
        assert "current_user" in str(conn.execute.await_args.args[0])

    @pytest.mark.asyncio
    async def test_reads_named_role(self) -> None:
        conn = _role_conn("etl", rolbypassrls=True)

        privileges = await fetch_role_privileges(conn, "etl")

        assert privileges.rolbypassrls
        assert conn.execute.await_args.args[1] == {"role": "etl"}

    @pytest.mark.asyncio
    async def test_missing_role_raises_lookup_error(self) -> None:
        conn = AsyncMock()
        result = MagicMock()
        result.one_or_none.return_value = None
        conn.execute.return_value = result

        with pytest.raises(LookupError, match="ghost"):
            await fetch_role_privileges(conn, "ghost")

    @pytest.mark.asyncio
    async def test_check_connection_role_refuses_superuser(self) -> None:
        with pytest.raises(MisconfiguredPrivilege):
            await check_connection_role(_role_conn("postgres", rolsuper=True))


class TestProvisionAppRole:
    """Tests for provision_app_role."""

    @pytest.mark.asyncio
    async def test_executes_statements_and_verifies(self) -> None:
        conn = _role_conn("nursery_app")

        privileges = await provision_app_role(conn, "nursery_app", password="pw")

        executed = [call.args[0] for call in conn.exec_driver_sql.await_args_list]
        assert executed == provision_statements("nursery_app", "pw")
        assert privileges.is_safe

    @pytest.mark.asyncio
    async def test_still_privileged_role_is_refused(self) -> None:
        conn = _role_conn("nursery_app", rolbypassrls=True)

        with pytest.raises(MisconfiguredPrivilege):
            await provision_app_role(conn, "nursery_app")
