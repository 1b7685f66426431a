from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from courtbatch.core.config import AppPaths


@dataclass(slots=True)
class CLIContext:
    paths: AppPaths
    console: Console

    @property
    def db_path(self) -> Path:
        return self.paths.db_path
