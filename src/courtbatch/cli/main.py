from __future__ import annotations

import argparse
import logging
from pathlib import Path

from rich.console import Console

from courtbatch.cli.commands import (
    batches_cmd,
    import_cmd,
    init_cmd,
    session_cmd,
    worker_cmd,
)
from courtbatch.cli.context import CLIContext
from courtbatch.core.config import load_paths
from courtbatch.core.errors import CourtBatchError
from courtbatch.core.logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="courtbatch",
        description="Court distribution manifest import and enrichment",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=Path.cwd(),
        help="Project root to use for .courtbatch data (default: current working directory)",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0)

    subparsers = parser.add_subparsers(dest="command", required=True)
    init_cmd.register(subparsers)
    import_cmd.register(subparsers)
    worker_cmd.register(subparsers)
    batches_cmd.register(subparsers)
    session_cmd.register(subparsers)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    console = Console()

    paths = load_paths(args.project_root)
    ctx = CLIContext(paths=paths, console=console)

    handler = getattr(args, "handler", None)
    if handler is None:
        parser.print_help()
        return 2

    try:
        return handler(args, ctx)
    except CourtBatchError as exc:
        logger.error(str(exc))
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
