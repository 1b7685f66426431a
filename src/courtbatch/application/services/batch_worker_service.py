from __future__ import annotations

import logging
import random
import sqlite3
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from courtbatch.application.services.batch_status_service import BatchStatusTracker
from courtbatch.core.config import WorkerSettings
from courtbatch.core.errors import (
    BatchRunError,
    ConfigurationError,
    RetrySentinelExhaustedError,
    SessionExpiredError,
    ValidationError,
    WorkerBusyError,
)
from courtbatch.domain.models.batch import BatchStatus
from courtbatch.domain.models.process import ProcessRecord
from courtbatch.domain.models.scrape import ScrapeResult
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo
from courtbatch.infrastructure.sites.base import SiteAdapter

logger = logging.getLogger(__name__)


class WorkerState(str, Enum):
    IDLE = "idle"
    FETCHING_PAGE = "fetching_page"
    DISPATCHING = "dispatching"
    DRAINING = "draining"
    COMPLETE = "complete"
    HALTED = "halted"


class ItemResult(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    EXHAUSTED = "exhausted"
    HALTED = "halted"


@dataclass(slots=True)
class ItemOutcome:
    record: ProcessRecord
    result: ScrapeResult | None = None
    error: Exception | None = None


@dataclass(slots=True)
class RoundReport:
    fetched: int = 0
    succeeded: int = 0
    failed: int = 0
    exhausted: int = 0
    completed: bool = False
    status: BatchStatus | None = None


@dataclass(slots=True)
class RunReport:
    batch_id: int
    rounds: int = 0
    failed_rounds: int = 0
    succeeded: int = 0
    failed: int = 0
    exhausted: int = 0
    state: WorkerState = WorkerState.IDLE
    status: BatchStatus | None = None
    delays: list[float] = field(default_factory=list)


class BatchWorker:
    """Drives enrichment of one batch against one court site.

    Each round pulls a page of unenriched records, scrapes them in groups of
    ``concurrency`` and waits for the whole group before moving on. The shared
    error streak and inter-group delay are only touched from the run thread, so
    outcomes of a group are applied one at a time in page order.
    """

    def __init__(
        self,
        adapter: SiteAdapter,
        process_repo: ProcessRepo,
        status_tracker: BatchStatusTracker,
        *,
        settings: WorkerSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self.adapter = adapter
        self.system = adapter.system
        self.process_repo = process_repo
        self.status_tracker = status_tracker
        self.settings = settings or WorkerSettings()
        if self.settings.base_delay_seconds > self.settings.max_delay_seconds:
            raise ConfigurationError("Worker base delay cannot exceed the maximum delay.")
        if self.settings.concurrency < 1 or self.settings.page_size < 1:
            raise ConfigurationError("Worker concurrency and page size must be positive.")
        self._sleep = sleep
        self._rng = rng or random.Random()
        self._run_lock = threading.Lock()

        self.state = WorkerState.IDLE
        self.current_delay = self.settings.base_delay_seconds
        self.consecutive_errors = 0

    def describe(self) -> dict[str, object]:
        return {
            "system": self.system.value,
            "state": self.state.value,
            "current_delay_seconds": round(self.current_delay, 2),
            "consecutive_errors": self.consecutive_errors,
            "concurrency": self.settings.concurrency,
        }

    def run(self, batch_id: int) -> RunReport:
        """Process ``batch_id`` until no unenriched record is left.

        Raises SessionExpiredError when the site session must be refreshed, and
        BatchRunError after too many consecutive failed rounds.
        """
        if not self._run_lock.acquire(blocking=False):
            raise WorkerBusyError(f"{self.system.value} worker is already processing a batch.")
        try:
            batch = self.status_tracker.ensure_batch(batch_id)
            if batch.system is not self.system:
                raise ValidationError(
                    f"Batch {batch_id} belongs to {batch.system.value}, not {self.system.value}."
                )
            logger.info(
                "%s worker started for batch %s (%d concurrent requests, ~%.0fs between groups)",
                self.system.value,
                batch_id,
                self.settings.concurrency,
                self.settings.base_delay_seconds,
            )
            with ThreadPoolExecutor(
                max_workers=self.settings.concurrency,
                thread_name_prefix=f"scrape-{self.system.value.lower()}",
            ) as executor:
                return self._run(batch_id, executor)
        finally:
            if self.state not in (WorkerState.COMPLETE, WorkerState.HALTED):
                self.state = WorkerState.IDLE
            self._run_lock.release()

    def _run(self, batch_id: int, executor: ThreadPoolExecutor) -> RunReport:
        report = RunReport(batch_id=batch_id)
        round_failures = 0
        while True:
            try:
                round_report = self.run_round(batch_id, executor, report)
            except SessionExpiredError as exc:
                self.state = WorkerState.HALTED
                report.state = self.state
                self.status_tracker.mark_error(batch_id, str(exc))
                raise
            except Exception as exc:
                round_failures += 1
                report.failed_rounds += 1
                logger.exception("Round for batch %s failed (%d in a row)", batch_id, round_failures)
                if round_failures >= self.settings.max_round_failures:
                    self.state = WorkerState.IDLE
                    raise BatchRunError(
                        f"Batch {batch_id} abandoned after {round_failures} failed round(s): {exc}"
                    ) from exc
                self._sleep(self._jittered(self.current_delay))
                continue

            round_failures = 0
            report.status = round_report.status
            if round_report.completed:
                logger.info("Batch %s complete", batch_id)
                self.state = WorkerState.COMPLETE
                report.state = self.state
                return report

            report.rounds += 1
            report.succeeded += round_report.succeeded
            report.failed += round_report.failed
            report.exhausted += round_report.exhausted

    def run_round(
        self,
        batch_id: int,
        executor: ThreadPoolExecutor,
        run_report: RunReport | None = None,
    ) -> RoundReport:
        self.state = WorkerState.FETCHING_PAGE
        page = self.process_repo.list_unenriched(batch_id, self.system.value, limit=self.settings.page_size)
        if not page:
            return RoundReport(completed=True, status=self.status_tracker.refresh(batch_id))

        logger.info("Processing %d record(s) of batch %s", len(page), batch_id)
        round_report = RoundReport(fetched=len(page))
        halted_by: SessionExpiredError | None = None
        group_size = self.settings.concurrency

        for start in range(0, len(page), group_size):
            group = page[start : start + group_size]

            self.state = WorkerState.DISPATCHING
            futures = [executor.submit(self._scrape, record) for record in group]
            outcomes = [future.result() for future in futures]

            self.state = WorkerState.DRAINING
            for outcome in outcomes:
                item_result = self._apply_outcome(outcome)
                if item_result is ItemResult.SUCCEEDED:
                    round_report.succeeded += 1
                elif item_result is ItemResult.EXHAUSTED:
                    round_report.failed += 1
                    round_report.exhausted += 1
                elif item_result is ItemResult.HALTED:
                    halted_by = halted_by or outcome.error
                else:
                    round_report.failed += 1

            if halted_by is not None:
                break

            self._adapt_delay()
            done = start + len(group)
            logger.info(
                "%d/%d - succeeded: %d, errors: %d",
                done,
                len(page),
                round_report.succeeded,
                round_report.failed,
            )
            if done < len(page):
                delay = self._jittered(self.current_delay)
                if run_report is not None:
                    run_report.delays.append(delay)
                self._sleep(delay)

        round_report.status = self.status_tracker.refresh(batch_id)
        if halted_by is not None:
            raise halted_by
        logger.info(
            "Round finished for batch %s - succeeded: %d, errors: %d",
            batch_id,
            round_report.succeeded,
            round_report.failed,
        )
        return round_report

    def _scrape(self, record: ProcessRecord) -> ItemOutcome:
        try:
            result = self.adapter.fetch(record.process_number)
            if result.retry:
                raise RetrySentinelExhaustedError(f"{record.process_number} is not available yet")
            return ItemOutcome(record=record, result=result)
        except Exception as exc:
            return ItemOutcome(record=record, error=exc)

    def _apply_outcome(self, outcome: ItemOutcome) -> ItemResult:
        record = outcome.record
        if outcome.error is None and outcome.result is not None:
            try:
                self.process_repo.mark_enriched(
                    record.id,
                    respondent=outcome.result.respondent,
                    amount=outcome.result.amount,
                )
            except sqlite3.Error as exc:
                outcome = ItemOutcome(record=record, error=exc)
            else:
                self.consecutive_errors = 0
                return ItemResult.SUCCEEDED

        error = outcome.error
        message = f"{type(error).__name__}: {error}"
        if isinstance(error, SessionExpiredError):
            try:
                self.process_repo.record_last_error(record.id, message)
            except sqlite3.Error:
                logger.exception("Could not store the session error of %s", record.process_number)
            return ItemResult.HALTED

        error_count = record.error_count + 1
        self.consecutive_errors += 1
        logger.error("Failed to process %s: %s", record.process_number, message)
        exhausted = error_count >= self.settings.max_item_errors or (
            error_count > 1 and self.consecutive_errors > self.settings.error_streak_limit
        )
        try:
            self.process_repo.record_failure(record.id, error_count=error_count, last_error=message)
            if exhausted:
                logger.warning(
                    "%s failed %d time(s); marking it as processed without data",
                    record.process_number,
                    error_count,
                )
                self.process_repo.mark_exhausted(record.id, error_count=error_count)
        except sqlite3.Error:
            logger.exception("Could not store the failure of %s", record.process_number)
            return ItemResult.FAILED

        if exhausted:
            self.consecutive_errors = 0
            return ItemResult.EXHAUSTED
        return ItemResult.FAILED

    def _adapt_delay(self) -> None:
        settings = self.settings
        if self.consecutive_errors >= settings.slowdown_streak:
            self.current_delay = min(settings.max_delay_seconds, self.current_delay + settings.delay_step_up_seconds)
            logger.warning(
                "%d consecutive errors; group delay raised to %.0fs",
                self.consecutive_errors,
                self.current_delay,
            )
        elif self.consecutive_errors == 0 and self.current_delay > settings.base_delay_seconds:
            self.current_delay = max(settings.base_delay_seconds, self.current_delay - settings.delay_step_down_seconds)

    def _jittered(self, base: float) -> float:
        variance = base * self.settings.jitter_ratio
        return max(0.0, base + self._rng.uniform(-variance, variance))
