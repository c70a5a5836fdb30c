# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Verify tenant isolation against a live database.

Connects as the configured application role (or --database-url), checks
the catalog and the connecting role, and prints a results table.

Exit codes:
    0: every check passed.
    1: any check failed, or verification could not run.

Usage:
    verify-rls
    verify-rls --database-url postgresql+asyncpg://nursery_app:...@db/nursery
    verify-rls --tables children invoices
"""

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from rich.console import Console
from rich.table import Table

from nursery_isolation.core.config import get_settings
from nursery_isolation.infrastructure.database.connection import create_engine
from nursery_isolation.infrastructure.database.verification import (
    VerificationReport,
    verify_isolation,
)
from nursery_isolation.utils.logging import setup_logging

logger = logging.getLogger(__name__)

console = Console()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="verify-rls",
        description="Verify row-level security tenant isolation.",
    )
    parser.add_argument(
        "--database-url",
        help="SQLAlchemy URL to connect with (defaults to DATABASE_* settings)",
    )
    parser.add_argument(
        "--tables",
        nargs="+",
        metavar="TABLE",
        help="Required tables (defaults to the full policy set)",
    )
    return parser


async def run_verification(database_url: str, tables: Sequence[str] | None = None) -> VerificationReport:
    """Open a single connection and run every isolation check.

    Args:
        database_url: SQLAlchemy database URL.
        tables: Required tables, or None for the policy set.

    Returns:
        The verification report.
    """
    engine = create_engine(database_url, pool_size=1, max_overflow=0)
    try:
        async with engine.connect() as conn:
            return await verify_isolation(conn, tables)
    finally:
        await engine.dispose()


def _flag(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"


def render_report(report: VerificationReport, out: Console = console) -> None:
    """Print the verification report as a table plus role and drift lines."""
    table = Table(title="Row-Level Security")
    table.add_column("Table", style="cyan")
    table.add_column("RLS enabled", justify="center")
    table.add_column("RLS forced", justify="center")
    table.add_column("Policy", justify="center")
    table.add_column("Status")

    for status in report.tables:
        if not status.exists:
            table.add_row(status.table, "-", "-", "-", "[red]✗ MISSING[/red]")
            continue
        table.add_row(
            status.table,
            _flag(status.rls_enabled),
            _flag(status.rls_forced),
            _flag(status.has_policy),
            "[green]✓ PASS[/green]" if status.passed else "[red]✗ FAIL[/red]",
        )

    out.print(table)

    role = report.role
    role_status = "[green]✓ safe[/green]" if role.is_safe else "[red]✗ bypasses RLS[/red]"
    out.print(
        f"Role [bold]{role.rolname}[/bold]: superuser={role.rolsuper} "
        f"bypassrls={role.rolbypassrls} {role_status}"
    )

    for name in report.unregistered:
        out.print(f"[red]✗ {name} has a tenant column but no isolation policy[/red]")

    if report.passed:
        out.print("\n[bold green]All isolation checks passed[/bold green]")
    else:
        out.print(f"\n[bold red]{len(report.failures())} isolation check(s) failed[/bold red]")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the verify-rls console script.

    Args:
        argv: Command line arguments, defaults to sys.argv.

    Returns:
        Process exit code.
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging(settings)

    database_url = args.database_url or settings.database.url

    try:
        report = asyncio.run(run_verification(database_url, args.tables))
    except Exception as e:
        logger.exception("Isolation verification could not run")
        console.print(f"[red]✗ Verification failed: {e}[/red]")
        return 1

    render_report(report)
    return 0 if report.passed else 1


if __name__ == "__main__":
    sys.exit(main())
