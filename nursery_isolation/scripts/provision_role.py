# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Create or repair the application database role.

Must run as an administrative role (the migration owner). The application
role named by TENANCY_APP_ROLE is created if missing, stripped of SUPERUSER
and BYPASSRLS, and granted exactly the access the application needs.

Usage:
    provision-app-role --admin-url postgresql+asyncpg://postgres:...@db/nursery
"""

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from rich.console import Console

from nursery_isolation.core.config import get_settings
from nursery_isolation.infrastructure.database.connection import create_engine
from nursery_isolation.infrastructure.database.privileges import (
    RolePrivileges,
    provision_app_role,
)
from nursery_isolation.utils.logging import setup_logging

logger = logging.getLogger(__name__)

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="provision-app-role",
        description="Create or repair the non-privileged application role.",
    )
    parser.add_argument(
        "--admin-url",
        required=True,
        help="SQLAlchemy URL of an administrative connection",
    )
    parser.add_argument("--role", help="Role name (defaults to TENANCY_APP_ROLE)")
    parser.add_argument(
        "--keep-password",
        action="store_true",
        help="Leave the role password unchanged",
    )
    return parser


async def run_provisioning(
    admin_url: str,
    role: str,
    password: str | None,
    schema: str,
) -> RolePrivileges:
    """Provision the role in one transaction and return its privileges."""
    engine = create_engine(admin_url, pool_size=1, max_overflow=0)
    try:
        async with engine.begin() as conn:
            return await provision_app_role(conn, role, password, schema)
    finally:
        await engine.dispose()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the provision-app-role console script."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings)

    role = args.role or settings.tenancy.app_role
    password = None if args.keep_password else settings.tenancy.app_role_password.get_secret_value()

    try:
        privileges = asyncio.run(
            run_provisioning(args.admin_url, role, password, settings.tenancy.schema_name)
        )
    except Exception as e:
        logger.exception("Role provisioning failed")
        console.print(f"[red]✗ Provisioning failed: {e}[/red]")
        return 1

    console.print(
        f"[green]✓ Role {privileges.rolname} ready[/green] "
        f"(superuser={privileges.rolsuper}, bypassrls={privileges.rolbypassrls})"
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
