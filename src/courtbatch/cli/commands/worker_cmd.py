from __future__ import annotations

import argparse
from pathlib import Path

from rich.table import Table

from courtbatch.application.services.batch_catalog_service import BatchCatalogService
from courtbatch.application.services.batch_queue_service import BatchQueueService
from courtbatch.application.services.batch_status_service import BatchStatusTracker
from courtbatch.application.services.batch_worker_service import BatchWorker
from courtbatch.application.services.project_service import ProjectService
from courtbatch.application.services.session_service import SessionStore
from courtbatch.cli.context import CLIContext
from courtbatch.core.config import ScrapeSettings, WorkerSettings
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.infrastructure.db.repos.batch_repo import BatchRepo
from courtbatch.infrastructure.db.repos.batch_status_repo import BatchStatusRepo
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo
from courtbatch.infrastructure.db.repos.session_repo import SessionRepo
from courtbatch.infrastructure.sites.registry import build_site_adapter


def register(subparsers: argparse._SubParsersAction[argparse.ArgumentParser]) -> None:
    parser = subparsers.add_parser("worker", help="Enrich batches with data scraped from court sites")
    worker_sub = parser.add_subparsers(dest="worker_command", required=True)

    run_parser = worker_sub.add_parser("run", help="Process one batch in the foreground until it completes")
    run_parser.add_argument("batch_id", type=int)
    run_parser.set_defaults(handler=run_batch)

    serve_parser = worker_sub.add_parser("serve", help="Consume the batch queue of one system")
    serve_parser.add_argument("--system", type=SourceSystem.parse, required=True)
    serve_parser.add_argument(
        "--resume",
        action="store_true",
        help="Queue every unfinished batch of the system before consuming",
    )
    serve_parser.add_argument(
        "--once",
        action="store_true",
        help="Drain the queued jobs and exit instead of waiting for new ones",
    )
    serve_parser.set_defaults(handler=serve)


def build_worker(db_path: Path, system: SourceSystem) -> BatchWorker:
    process_repo = ProcessRepo(db_path)
    tracker = BatchStatusTracker(BatchRepo(db_path), process_repo, BatchStatusRepo(db_path))
    adapter = build_site_adapter(
        system,
        session_store=SessionStore(SessionRepo(db_path)),
        settings=ScrapeSettings.from_env(),
    )
    return BatchWorker(adapter, process_repo, tracker, settings=WorkerSettings.from_env())


def run_batch(args: argparse.Namespace, ctx: CLIContext) -> int:
    ProjectService(ctx.paths).require_initialized()
    db_path = ctx.db_path
    catalog = BatchCatalogService(BatchRepo(db_path), BatchStatusRepo(db_path), ProcessRepo(db_path))
    batch = catalog.get_batch(args.batch_id).batch

    worker = build_worker(db_path, batch.system)
    report = worker.run(batch.id)

    table = Table(title=f"Batch {batch.id} ({batch.system.value})")
    table.add_column("Rounds", justify="right")
    table.add_column("Enriched", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Gave up", justify="right")
    table.add_column("Progress", justify="right")
    progress = f"{report.status.percent_complete:.2f}%" if report.status else "-"
    table.add_row(str(report.rounds), str(report.succeeded), str(report.failed), str(report.exhausted), progress)
    ctx.console.print(table)
    return 0


def serve(args: argparse.Namespace, ctx: CLIContext) -> int:
    ProjectService(ctx.paths).require_initialized()
    db_path = ctx.db_path
    worker = build_worker(db_path, args.system)
    queue = BatchQueueService(db_path=db_path, system=args.system, run_batch_callback=worker.run)

    if args.resume:
        catalog = BatchCatalogService(BatchRepo(db_path), BatchStatusRepo(db_path), ProcessRepo(db_path))
        resumed = catalog.resume(queue, args.system)
        ctx.console.print(f"Queued {len(resumed)} unfinished batch(es)")

    if args.once:
        processed = 0
        while queue.process_next():
            processed += 1
        ctx.console.print(f"Processed {processed} job(s)")
        return 0

    ctx.console.print(f"[green]Consuming {args.system.value} queue[/green] (Ctrl-C to stop)")
    queue.start()
    try:
        queue.wait()
    except KeyboardInterrupt:
        ctx.console.print("[yellow]Stopping worker...[/yellow]")
    finally:
        queue.shutdown()
    return 0
