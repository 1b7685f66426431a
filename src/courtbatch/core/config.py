from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class AppPaths:
    project_root: Path
    data_dir: Path
    db_path: Path


DEFAULT_DATA_DIRNAME = ".courtbatch"


def load_paths(project_root: Path | None = None) -> AppPaths:
    root = (project_root or Path.cwd()).expanduser().resolve()

    home_raw = os.getenv("COURTBATCH_HOME")
    if home_raw:
        data_dir = Path(home_raw).expanduser().resolve()
    else:
        data_dir = root / DEFAULT_DATA_DIRNAME

    return AppPaths(
        project_root=root,
        data_dir=data_dir,
        db_path=data_dir / "courtbatch.db",
    )


def read_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def read_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class WorkerSettings:
    """Tunables of the adaptive batch worker.

    Delays are in seconds. The circuit breaker marks a record terminal once its
    own error count reaches ``max_item_errors``, or once it has failed more than
    once while the worker-wide streak of failures exceeds ``error_streak_limit``.
    """

    page_size: int = 100
    concurrency: int = 3
    base_delay_seconds: float = 2.0
    max_delay_seconds: float = 15.0
    delay_step_up_seconds: float = 2.0
    delay_step_down_seconds: float = 1.0
    jitter_ratio: float = 0.3
    max_item_errors: int = 5
    error_streak_limit: int = 15
    slowdown_streak: int = 5
    max_round_failures: int = 3

    @classmethod
    def from_env(cls) -> WorkerSettings:
        defaults = cls()
        return cls(
            page_size=read_int_env("COURTBATCH_WORKER_PAGE_SIZE", defaults.page_size),
            concurrency=read_int_env("COURTBATCH_WORKER_CONCURRENCY", defaults.concurrency),
            base_delay_seconds=read_float_env("COURTBATCH_WORKER_BASE_DELAY", defaults.base_delay_seconds),
            max_delay_seconds=read_float_env("COURTBATCH_WORKER_MAX_DELAY", defaults.max_delay_seconds),
            delay_step_up_seconds=read_float_env("COURTBATCH_WORKER_DELAY_STEP_UP", defaults.delay_step_up_seconds),
            delay_step_down_seconds=read_float_env(
                "COURTBATCH_WORKER_DELAY_STEP_DOWN", defaults.delay_step_down_seconds
            ),
            jitter_ratio=read_float_env("COURTBATCH_WORKER_JITTER", defaults.jitter_ratio),
            max_item_errors=read_int_env("COURTBATCH_WORKER_MAX_ITEM_ERRORS", defaults.max_item_errors),
            error_streak_limit=read_int_env("COURTBATCH_WORKER_ERROR_STREAK_LIMIT", defaults.error_streak_limit),
            slowdown_streak=read_int_env("COURTBATCH_WORKER_SLOWDOWN_STREAK", defaults.slowdown_streak),
            max_round_failures=read_int_env("COURTBATCH_WORKER_MAX_ROUND_FAILURES", defaults.max_round_failures),
        )


@dataclass(frozen=True)
class ScrapeSettings:
    timeout_seconds: float = 15.0
    retry_attempts: int = 3
    retry_backoff_seconds: float = 1.0
    max_redirects: int = 10

    @classmethod
    def from_env(cls) -> ScrapeSettings:
        defaults = cls()
        return cls(
            timeout_seconds=read_float_env("COURTBATCH_SCRAPE_TIMEOUT", defaults.timeout_seconds),
            retry_attempts=read_int_env("COURTBATCH_SCRAPE_RETRY_ATTEMPTS", defaults.retry_attempts),
            retry_backoff_seconds=read_float_env("COURTBATCH_SCRAPE_RETRY_BACKOFF", defaults.retry_backoff_seconds),
            max_redirects=read_int_env("COURTBATCH_SCRAPE_MAX_REDIRECTS", defaults.max_redirects),
        )


@dataclass(frozen=True)
class ImportSettings:
    lookup_chunk_size: int = 1000
    insert_chunk_size: int = 500

    @classmethod
    def from_env(cls) -> ImportSettings:
        defaults = cls()
        return cls(
            lookup_chunk_size=read_int_env("COURTBATCH_IMPORT_LOOKUP_CHUNK", defaults.lookup_chunk_size),
            insert_chunk_size=read_int_env("COURTBATCH_IMPORT_INSERT_CHUNK", defaults.insert_chunk_size),
        )


DEFAULT_SESSION_TTL_SECONDS = 22 * 60 * 60
