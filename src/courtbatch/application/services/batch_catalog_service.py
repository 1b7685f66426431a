from __future__ import annotations

import logging
from dataclasses import dataclass

from courtbatch.application.services.batch_import_service import BatchQueue
from courtbatch.core.errors import BatchNotFoundError
from courtbatch.domain.models.batch import Batch, BatchState, BatchStatus, SourceSystem
from courtbatch.domain.models.process import ProcessRecord
from courtbatch.infrastructure.db.repos.batch_repo import BatchRepo
from courtbatch.infrastructure.db.repos.batch_status_repo import BatchStatusRepo
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class BatchWithStatus:
    batch: Batch
    status: BatchStatus | None


@dataclass(slots=True)
class ProcessingSummary:
    total_processes: int
    processed_processes: int
    pending_processes: int
    error_processes: int
    percent_complete: float
    batches: int


class BatchCatalogService:
    def __init__(self, batch_repo: BatchRepo, status_repo: BatchStatusRepo, process_repo: ProcessRepo) -> None:
        self.batch_repo = batch_repo
        self.status_repo = status_repo
        self.process_repo = process_repo

    def list_batches(self, system: SourceSystem | None = None, *, limit: int = 200) -> list[BatchWithStatus]:
        batches = self.batch_repo.list(system.value if system else None, limit=limit)
        return [BatchWithStatus(batch=batch, status=self.status_repo.get(batch.id)) for batch in batches]

    def get_batch(self, batch_id: int) -> BatchWithStatus:
        batch = self.batch_repo.get_by_id(batch_id)
        if batch is None:
            raise BatchNotFoundError(f"Batch not found: {batch_id}")
        return BatchWithStatus(batch=batch, status=self.status_repo.get(batch_id))

    def list_processes(self, batch_id: int) -> list[ProcessRecord]:
        self.get_batch(batch_id)
        return self.process_repo.list_for_batch(batch_id)

    def list_processing(self, system: SourceSystem | None = None) -> list[BatchWithStatus]:
        batch_ids = self.status_repo.list_batch_ids_by_status(
            BatchState.PROCESSING,
            system.value if system else None,
        )
        return [self.get_batch(batch_id) for batch_id in batch_ids]

    def delete_batch(self, batch_id: int) -> None:
        """Delete a batch together with its process rows and status."""
        if not self.batch_repo.delete(batch_id):
            raise BatchNotFoundError(f"Batch not found: {batch_id}")
        logger.info("Batch %s deleted", batch_id)

    def summary(self, system: SourceSystem | None = None) -> ProcessingSummary:
        counts = self.process_repo.count_for_system(system.value if system else None)
        batches = self.batch_repo.list(system.value if system else None, limit=1_000_000)
        return ProcessingSummary(
            total_processes=counts.total,
            processed_processes=counts.enriched,
            pending_processes=counts.pending,
            error_processes=counts.failed,
            percent_complete=round(counts.enriched / counts.total * 100, 2) if counts.total else 0.0,
            batches=len(batches),
        )

    def resume(self, queue: BatchQueue, system: SourceSystem) -> list[int]:
        """Re-enqueue every unfinished batch of ``system``.

        Batches halted with an ``error`` status are included, since their
        records are still pending.
        """
        batch_ids = self.status_repo.list_batch_ids_by_status(BatchState.PROCESSING, system.value)
        batch_ids += self.status_repo.list_batch_ids_by_status(BatchState.ERROR, system.value)
        for batch_id in sorted(set(batch_ids)):
            queue.enqueue(batch_id, system)
        return sorted(set(batch_ids))
