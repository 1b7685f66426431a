from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Callable

from courtbatch.core.errors import BatchNotFoundError, SessionExpiredError, ValidationError
from courtbatch.core.ids import new_uuid
from courtbatch.core.time import now_utc_iso
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.infrastructure.db.sqlite import get_connection

logger = logging.getLogger(__name__)


class BatchQueueService:
    """sqlite-backed "process batch N" queue, one logical queue per system.

    Delivery is at-least-once: jobs claimed by a worker that died are put back
    to ``queued`` when a consumer starts. A single consumer thread per system
    means a batch is never processed by two rounds at once.
    """

    _TERMINAL_STATUSES = {"done", "failed"}
    _DEFAULT_MAX_ATTEMPTS = 3
    # Failures an operator has to fix before a retry can help.
    _NON_RETRYABLE = (SessionExpiredError, BatchNotFoundError, ValidationError)

    def __init__(
        self,
        *,
        db_path: Path,
        system: SourceSystem | None = None,
        run_batch_callback: Callable[[int], Any] | None = None,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
        poll_interval_seconds: float = 1.0,
    ) -> None:
        self.db_path = db_path
        self.system = system
        self._run_batch_callback = run_batch_callback
        self.max_attempts = max(1, max_attempts)
        self.poll_interval_seconds = poll_interval_seconds
        self._wakeup = threading.Event()
        self._stop = threading.Event()
        self._worker: threading.Thread | None = None
        self._ensure_schema()

    def start(self) -> None:
        if self.system is None or self._run_batch_callback is None:
            raise ValueError("A consumer needs a system and a batch callback.")
        if self._worker is not None and self._worker.is_alive():
            return
        self._recover_inflight_jobs()
        self._stop.clear()
        self._worker = threading.Thread(
            target=self._worker_loop,
            daemon=True,
            name=f"batch-queue-{self.system.value.lower()}",
        )
        self._worker.start()

    def shutdown(self, timeout: float = 2.0) -> None:
        self._stop.set()
        self._wakeup.set()
        if self._worker is not None and self._worker.is_alive():
            self._worker.join(timeout=timeout)

    def wait(self) -> None:
        """Block until the consumer thread exits."""
        if self._worker is not None:
            self._worker.join()

    def enqueue(self, batch_id: int, system: SourceSystem) -> dict[str, Any]:
        now = now_utc_iso()
        with get_connection(self.db_path) as conn:
            pending = conn.execute(
                """
                SELECT *
                FROM batch_jobs
                WHERE queue_name = ?
                  AND batch_id = ?
                  AND status = 'queued'
                ORDER BY created_at ASC
                LIMIT 1
                """,
                (system.value, batch_id),
            ).fetchone()
            if pending is not None:
                return self._serialize_job_row(pending)

            job_id = new_uuid()
            conn.execute(
                """
                INSERT INTO batch_jobs (
                    id,
                    queue_name,
                    batch_id,
                    status,
                    attempts,
                    detail,
                    error_message,
                    created_at,
                    updated_at,
                    started_at,
                    finished_at
                ) VALUES (?, ?, ?, 'queued', 0, ?, NULL, ?, ?, NULL, NULL)
                """,
                (job_id, system.value, batch_id, "Queued for processing.", now, now),
            )
            conn.commit()
            row = conn.execute("SELECT * FROM batch_jobs WHERE id = ?", (job_id,)).fetchone()
        logger.info("Batch %s queued on %s", batch_id, system.value)
        self._wakeup.set()
        return self._serialize_job_row(row)

    def status(self, *, limit: int = 200) -> dict[str, Any]:
        safe_limit = max(1, min(int(limit), 50000))
        where = "WHERE queue_name = ?" if self.system else ""
        params: tuple = (self.system.value,) if self.system else ()
        with get_connection(self.db_path) as conn:
            counts = conn.execute(
                f"""
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN status = 'queued' THEN 1 ELSE 0 END) AS queued,
                    SUM(CASE WHEN status = 'processing' THEN 1 ELSE 0 END) AS processing,
                    SUM(CASE WHEN status = 'done' THEN 1 ELSE 0 END) AS done,
                    SUM(CASE WHEN status = 'failed' THEN 1 ELSE 0 END) AS failed
                FROM batch_jobs
                {where}
                """,
                params,
            ).fetchone()
            rows = conn.execute(
                f"""
                SELECT *
                FROM batch_jobs
                {where}
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (*params, safe_limit),
            ).fetchall()

        return {
            "queue": {
                "total": int(counts["total"] or 0),
                "queued": int(counts["queued"] or 0),
                "processing": int(counts["processing"] or 0),
                "done": int(counts["done"] or 0),
                "failed": int(counts["failed"] or 0),
            },
            "jobs": [self._serialize_job_row(row) for row in reversed(rows)],
        }

    def process_next(self) -> bool:
        """Claim and run one queued job. Returns False when the queue is empty."""
        row = self._claim_next_job()
        if row is None:
            return False
        self._process_job(row)
        return True

    def _ensure_schema(self) -> None:
        with get_connection(self.db_path) as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS batch_jobs (
                    id TEXT PRIMARY KEY,
                    queue_name TEXT NOT NULL,
                    batch_id INTEGER NOT NULL,
                    status TEXT NOT NULL,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    detail TEXT,
                    error_message TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    started_at TEXT,
                    finished_at TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_batch_jobs_queue_status_created
                ON batch_jobs(queue_name, status, created_at ASC);
                """
            )
            conn.commit()

    def _recover_inflight_jobs(self) -> None:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                UPDATE batch_jobs
                SET status = 'queued',
                    detail = 'Recovered after worker restart.',
                    updated_at = ?
                WHERE queue_name = ?
                  AND status = 'processing'
                """,
                (now_utc_iso(), self.system.value),
            )
            conn.commit()
        if cursor.rowcount:
            logger.warning("Recovered %d in-flight job(s) on %s", cursor.rowcount, self.system.value)

    def _worker_loop(self) -> None:
        while not self._stop.is_set():
            try:
                processed = self.process_next()
            except Exception:
                logger.exception("Batch queue consumer on %s failed; retrying", self.system.value)
                processed = False
            if not processed:
                self._wakeup.wait(timeout=self.poll_interval_seconds)
                self._wakeup.clear()

    def _claim_next_job(self):
        if self.system is None:
            raise ValueError("Only a consumer bound to a system can claim jobs.")
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT *
                FROM batch_jobs
                WHERE queue_name = ?
                  AND status = 'queued'
                ORDER BY created_at ASC, rowid ASC
                LIMIT 1
                """,
                (self.system.value,),
            ).fetchone()
            if row is None:
                return None
            now = now_utc_iso()
            conn.execute(
                """
                UPDATE batch_jobs
                SET status = 'processing',
                    attempts = attempts + 1,
                    detail = ?,
                    updated_at = ?,
                    started_at = COALESCE(started_at, ?)
                WHERE id = ?
                """,
                ("Processing batch...", now, now, row["id"]),
            )
            conn.commit()
            claimed = conn.execute("SELECT * FROM batch_jobs WHERE id = ?", (row["id"],)).fetchone()
        return claimed

    def _process_job(self, row) -> None:
        job_id = str(row["id"])
        batch_id = int(row["batch_id"])
        attempts = int(row["attempts"] or 0)
        try:
            self._run_batch_callback(batch_id)
        except self._NON_RETRYABLE as exc:
            logger.error("Batch job %s (batch %s) stopped: %s", job_id, batch_id, exc)
            self._finish_job(job_id, status="failed", detail="Stopped; operator action required.", error=str(exc))
        except Exception as exc:
            logger.exception("Batch job failed: %s (batch %s)", job_id, batch_id)
            if attempts < self.max_attempts:
                self._finish_job(
                    job_id,
                    status="queued",
                    detail=f"Retrying after failure ({attempts}/{self.max_attempts}).",
                    error=str(exc),
                )
            else:
                self._finish_job(job_id, status="failed", detail="Gave up after repeated failures.", error=str(exc))
        else:
            self._finish_job(job_id, status="done", detail="Batch processed.", error=None)

    def _finish_job(self, job_id: str, *, status: str, detail: str, error: str | None) -> None:
        now = now_utc_iso()
        finished_at = now if status in self._TERMINAL_STATUSES else None
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE batch_jobs
                SET status = ?,
                    detail = ?,
                    error_message = ?,
                    updated_at = ?,
                    finished_at = ?
                WHERE id = ?
                """,
                (status, detail, error, now, finished_at, job_id),
            )
            conn.commit()

    @staticmethod
    def _serialize_job_row(row) -> dict[str, Any]:
        return {
            "id": row["id"],
            "queue": row["queue_name"],
            "batch_id": int(row["batch_id"]),
            "status": row["status"],
            "attempts": int(row["attempts"] or 0),
            "detail": row["detail"],
            "error_message": row["error_message"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "started_at": row["started_at"],
            "finished_at": row["finished_at"],
        }
