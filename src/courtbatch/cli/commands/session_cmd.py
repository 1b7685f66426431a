from __future__ import annotations

import argparse

from rich.table import Table

from courtbatch.application.services.project_service import ProjectService
from courtbatch.application.services.session_service import SessionStore
from courtbatch.cli.context import CLIContext
from courtbatch.core.config import DEFAULT_SESSION_TTL_SECONDS
from courtbatch.core.time import now_utc
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.infrastructure.db.repos.session_repo import SessionRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("session", help="Manage court site session tokens")
    session_sub = parser.add_subparsers(dest="session_command", required=True)

    set_parser = session_sub.add_parser("set", help="Store a fresh session token")
    set_parser.add_argument("token")
    set_parser.add_argument("--system", type=SourceSystem.parse, default=SourceSystem.EPROC)
    set_parser.add_argument(
        "--ttl-hours",
        type=float,
        default=DEFAULT_SESSION_TTL_SECONDS / 3600,
        help="Hours until the token is considered expired (default: 22)",
    )
    set_parser.set_defaults(handler=run_set)

    show_parser = session_sub.add_parser("show", help="Show stored session tokens")
    show_parser.set_defaults(handler=run_show)


def run_set(args: argparse.Namespace, ctx: CLIContext) -> int:
    ProjectService(ctx.paths).require_initialized()
    store = SessionStore(SessionRepo(ctx.db_path))
    session = store.refresh(args.system.value, args.token, ttl_seconds=args.ttl_hours * 3600)
    ctx.console.print(
        f"[green]Session stored[/green] for {session.system}, expires {session.expires_at.isoformat()}"
    )
    return 0


def run_show(args: argparse.Namespace, ctx: CLIContext) -> int:
    ProjectService(ctx.paths).require_initialized()
    store = SessionStore(SessionRepo(ctx.db_path))
    now = now_utc()

    table = Table(title="Sessions")
    table.add_column("System")
    table.add_column("Token", overflow="fold")
    table.add_column("Expires")
    table.add_column("State")
    for system in SourceSystem:
        session = store.describe(system.value)
        if session is None:
            table.add_row(system.value, "-", "-", "[yellow]missing[/yellow]")
            continue
        masked = session.token[:4] + "…" if len(session.token) > 4 else "…"
        state = "[red]expired[/red]" if session.is_expired(now) else "[green]valid[/green]"
        table.add_row(system.value, masked, session.expires_at.isoformat(), state)
    ctx.console.print(table)
    return 0
