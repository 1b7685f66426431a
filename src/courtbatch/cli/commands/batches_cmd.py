from __future__ import annotations

import argparse

from rich.table import Table

from courtbatch.application.services.batch_catalog_service import BatchCatalogService, BatchWithStatus
from courtbatch.application.services.batch_queue_service import BatchQueueService
from courtbatch.application.services.project_service import ProjectService
from courtbatch.cli.context import CLIContext
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.infrastructure.db.repos.batch_repo import BatchRepo
from courtbatch.infrastructure.db.repos.batch_status_repo import BatchStatusRepo
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("batches", help="Inspect and manage imported batches")
    batches_sub = parser.add_subparsers(dest="batches_command", required=True)

    list_parser = batches_sub.add_parser("list", help="List batches with their progress")
    list_parser.add_argument("--system", type=SourceSystem.parse)
    list_parser.add_argument("--processing", action="store_true", help="Only batches still processing")
    list_parser.add_argument("--limit", type=int, default=50)
    list_parser.set_defaults(handler=run_list)

    status_parser = batches_sub.add_parser("status", help="Show one batch and its records")
    status_parser.add_argument("batch_id", type=int)
    status_parser.add_argument("--records", action="store_true", help="Also list the process records")
    status_parser.set_defaults(handler=run_status)

    summary_parser = batches_sub.add_parser("summary", help="Aggregate progress over all batches")
    summary_parser.add_argument("--system", type=SourceSystem.parse)
    summary_parser.set_defaults(handler=run_summary)

    delete_parser = batches_sub.add_parser("delete", help="Delete a batch and its records")
    delete_parser.add_argument("batch_id", type=int)
    delete_parser.set_defaults(handler=run_delete)

    resume_parser = batches_sub.add_parser("resume", help="Queue every unfinished batch of a system again")
    resume_parser.add_argument("--system", type=SourceSystem.parse, required=True)
    resume_parser.set_defaults(handler=run_resume)

    queue_parser = batches_sub.add_parser("queue", help="Show the batch job queue")
    queue_parser.add_argument("--system", type=SourceSystem.parse)
    queue_parser.add_argument("--limit", type=int, default=20)
    queue_parser.set_defaults(handler=run_queue)


def _catalog(ctx: CLIContext) -> BatchCatalogService:
    ProjectService(ctx.paths).require_initialized()
    db_path = ctx.db_path
    return BatchCatalogService(BatchRepo(db_path), BatchStatusRepo(db_path), ProcessRepo(db_path))


def _batch_table(title: str, entries: list[BatchWithStatus]) -> Table:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("System")
    table.add_column("UF")
    table.add_column("Distributed")
    table.add_column("Processes", justify="right")
    table.add_column("Done", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("%", justify="right")
    table.add_column("Status")

    for entry in entries:
        batch, status = entry.batch, entry.status
        table.add_row(
            str(batch.id),
            batch.system.value,
            batch.state_code,
            batch.distribution_date.isoformat(),
            str(batch.total_processes),
            str(batch.processed_count),
            str(status.error_processes) if status else "-",
            f"{status.percent_complete:.2f}" if status else "-",
            status.status.value if status else "-",
        )
    return table


def run_list(args: argparse.Namespace, ctx: CLIContext) -> int:
    catalog = _catalog(ctx)
    if args.processing:
        entries = catalog.list_processing(args.system)
    else:
        entries = catalog.list_batches(args.system, limit=args.limit)
    ctx.console.print(_batch_table(f"Batches ({len(entries)})", entries))
    return 0


def run_status(args: argparse.Namespace, ctx: CLIContext) -> int:
    catalog = _catalog(ctx)
    entry = catalog.get_batch(args.batch_id)
    ctx.console.print(_batch_table(entry.batch.description or f"Batch {entry.batch.id}", [entry]))

    if entry.status and entry.status.error_message:
        ctx.console.print(f"[red]Last error:[/red] {entry.status.error_message}")

    if args.records:
        table = Table(title="Records")
        table.add_column("Process", overflow="fold")
        table.add_column("District")
        table.add_column("Class")
        table.add_column("Respondent", overflow="fold")
        table.add_column("Amount", justify="right")
        table.add_column("Errors", justify="right")
        table.add_column("Last error", overflow="fold")
        for record in catalog.list_processes(args.batch_id):
            table.add_row(
                record.process_number,
                record.district,
                record.class_name,
                record.respondent or "",
                str(record.amount) if record.amount is not None else "",
                str(record.error_count),
                record.last_error or "",
            )
        ctx.console.print(table)
    return 0


def run_summary(args: argparse.Namespace, ctx: CLIContext) -> int:
    summary = _catalog(ctx).summary(args.system)

    table = Table(title=f"Processing summary ({args.system.value if args.system else 'all systems'})")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Batches", str(summary.batches))
    table.add_row("Processes", str(summary.total_processes))
    table.add_row("Processed", str(summary.processed_processes))
    table.add_row("Pending", str(summary.pending_processes))
    table.add_row("Errors", str(summary.error_processes))
    table.add_row("Complete", f"{summary.percent_complete:.2f}%")
    ctx.console.print(table)
    return 0


def run_delete(args: argparse.Namespace, ctx: CLIContext) -> int:
    _catalog(ctx).delete_batch(args.batch_id)
    ctx.console.print(f"[green]Deleted[/green] batch {args.batch_id}")
    return 0


def run_resume(args: argparse.Namespace, ctx: CLIContext) -> int:
    catalog = _catalog(ctx)
    queue = BatchQueueService(db_path=ctx.db_path)
    resumed = catalog.resume(queue, args.system)
    if not resumed:
        ctx.console.print("[yellow]No unfinished batches[/yellow]")
        return 0
    ctx.console.print(f"[green]Queued[/green] {len(resumed)} batch(es): {', '.join(str(i) for i in resumed)}")
    return 0


def run_queue(args: argparse.Namespace, ctx: CLIContext) -> int:
    ProjectService(ctx.paths).require_initialized()
    queue = BatchQueueService(db_path=ctx.db_path, system=args.system)
    snapshot = queue.status(limit=args.limit)

    counts = snapshot["queue"]
    ctx.console.print(
        f"queued={counts['queued']} processing={counts['processing']} "
        f"done={counts['done']} failed={counts['failed']}"
    )
    table = Table(title="Jobs")
    table.add_column("Batch", justify="right")
    table.add_column("Queue")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Detail", overflow="fold")
    table.add_column("Error", overflow="fold")
    for job in snapshot["jobs"]:
        table.add_row(
            str(job["batch_id"]),
            job["queue"],
            job["status"],
            str(job["attempts"]),
            job["detail"] or "",
            job["error_message"] or "",
        )
    ctx.console.print(table)
    return 0
