from __future__ import annotations

import logging

from courtbatch.core.errors import BatchNotFoundError
from courtbatch.core.time import now_utc_iso
from courtbatch.domain.models.batch import Batch, BatchState, BatchStatus
from courtbatch.infrastructure.db.repos.batch_repo import BatchRepo
from courtbatch.infrastructure.db.repos.batch_status_repo import BatchStatusRepo
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo

logger = logging.getLogger(__name__)


class BatchStatusTracker:
    """Recomputes a batch's aggregate counters from its process rows.

    Refreshing is idempotent: the status row is always derived, never edited.
    """

    def __init__(self, batch_repo: BatchRepo, process_repo: ProcessRepo, status_repo: BatchStatusRepo) -> None:
        self.batch_repo = batch_repo
        self.process_repo = process_repo
        self.status_repo = status_repo

    def refresh(self, batch_id: int) -> BatchStatus:
        counts = self.process_repo.count_for_batch(batch_id)
        self.batch_repo.update_progress(
            batch_id,
            processed_count=counts.enriched,
            total_processes=counts.total,
        )

        now = now_utc_iso()
        completed = counts.enriched == counts.total
        previous = self.status_repo.get(batch_id)
        finished_at = None
        if completed:
            finished_at = previous.finished_at if previous and previous.finished_at else now

        status = BatchStatus(
            batch_id=batch_id,
            total_processes=counts.total,
            processed_processes=counts.enriched,
            pending_processes=counts.pending,
            error_processes=counts.failed,
            percent_complete=round(counts.enriched / counts.total * 100, 2) if counts.total else 0.0,
            status=BatchState.COMPLETED if completed else BatchState.PROCESSING,
            error_message=None,
            started_at=previous.started_at if previous else now,
            finished_at=finished_at,
            updated_at=now,
        )
        self.status_repo.upsert(status)
        logger.debug(
            "Batch %s: %d/%d processed, %d failed",
            batch_id,
            counts.enriched,
            counts.total,
            counts.failed,
        )
        return status

    def mark_error(self, batch_id: int, message: str) -> None:
        logger.error("Batch %s halted: %s", batch_id, message)
        self.status_repo.mark_error(batch_id, message)

    def ensure_batch(self, batch_id: int) -> Batch:
        batch = self.batch_repo.get_by_id(batch_id)
        if batch is None:
            raise BatchNotFoundError(f"Batch not found: {batch_id}")
        return batch
