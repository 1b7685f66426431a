from __future__ import annotations

import argparse

from courtbatch.application.services.project_service import ProjectService
from courtbatch.cli.context import CLIContext


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("init", help="Initialize courtbatch data directory and database")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    service = ProjectService(ctx.paths)
    result = service.init_project()

    if result.paths_created:
        for path in result.paths_created:
            ctx.console.print(f"[green]Created[/green] {path}")
    else:
        ctx.console.print("[yellow]Project paths already existed[/yellow]")

    ctx.console.print(f"[green]Database ready[/green] {result.db_path}")
    ctx.console.print("Next: store an EPROC token with [bold]courtbatch session set TOKEN[/bold], then [bold]courtbatch import REPORT.pdf --system esaj|eproc[/bold]")
    return 0
