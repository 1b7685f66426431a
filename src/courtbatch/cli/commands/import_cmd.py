from __future__ import annotations

import argparse
from pathlib import Path

from rich.table import Table

from courtbatch.application.services.batch_import_service import BatchImporter
from courtbatch.application.services.batch_queue_service import BatchQueueService
from courtbatch.application.services.project_service import ProjectService
from courtbatch.cli.context import CLIContext
from courtbatch.core.config import ImportSettings
from courtbatch.core.errors import DuplicateImportError, ValidationError
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.infrastructure.db.repos.batch_repo import BatchRepo
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("import", help="Import a distribution report PDF as a new batch")
    parser.add_argument("path", type=Path, help="PDF report to import")
    parser.add_argument(
        "--system",
        type=SourceSystem.parse,
        required=True,
        help="Report layout / court system (esaj or eproc)",
    )
    parser.add_argument("--state", default="SP", help="Two-letter state code (default: SP)")
    parser.set_defaults(handler=run)


def run(args: argparse.Namespace, ctx: CLIContext) -> int:
    ProjectService(ctx.paths).require_initialized()

    path = args.path.expanduser().resolve()
    if not path.is_file():
        raise ValidationError(f"File not found: {path}")

    queue = BatchQueueService(db_path=ctx.db_path)
    importer = BatchImporter(
        ProcessRepo(ctx.db_path),
        BatchRepo(ctx.db_path),
        queue,
        settings=ImportSettings.from_env(),
    )

    with ctx.console.status(f"Importing {path.name}..."):
        try:
            result = importer.import_pdf(path.read_bytes(), args.system, args.state)
        except DuplicateImportError as exc:
            ctx.console.print(f"[yellow]{exc}[/yellow]")
            if exc.existing_batch_id is not None:
                ctx.console.print(f"Batch {exc.existing_batch_id} was queued again for processing.")
            return 1

    table = Table(title="Import Result")
    table.add_column("Field")
    table.add_column("Value", overflow="fold")
    table.add_row("Batch", str(result.batch_id))
    table.add_row("System", result.system.value)
    table.add_row("State", result.state_code)
    table.add_row("Imported", str(result.total_processes))
    table.add_row("Already stored", str(result.duplicates_ignored))
    table.add_row("Repeated in PDF", str(result.internal_duplicates))
    ctx.console.print(table)
    return 0
