from __future__ import annotations

import logging

from rich.logging import RichHandler

_LEVELS = {0: logging.WARNING, 1: logging.INFO}


def configure_logging(verbosity: int = 0) -> None:
    level = _LEVELS.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # urllib3 is chatty at DEBUG about every pooled connection.
    logging.getLogger("urllib3").setLevel(max(level, logging.INFO))
