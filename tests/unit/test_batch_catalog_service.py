from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from courtbatch.application.services.batch_catalog_service import BatchCatalogService
from courtbatch.application.services.batch_status_service import BatchStatusTracker
from courtbatch.core.errors import BatchNotFoundError
from courtbatch.domain.models.batch import BatchState, SourceSystem
from courtbatch.domain.models.process import ProcessDraft
from courtbatch.infrastructure.db.repos.batch_repo import BatchRepo
from courtbatch.infrastructure.db.repos.batch_status_repo import BatchStatusRepo
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo
from courtbatch.infrastructure.db.sqlite import get_connection, initialize_schema


class FakeQueue:
    def __init__(self) -> None:
        self.enqueued: list[tuple[int, SourceSystem]] = []

    def enqueue(self, batch_id: int, system: SourceSystem) -> None:
        self.enqueued.append((batch_id, system))


def _create(db_path: Path, system: SourceSystem, numbers: list[str]):
    return BatchRepo(db_path).create_with_processes(
        system=system,
        state_code="SP",
        distribution_date=date(2024, 1, 5),
        description="manifest",
        drafts=[ProcessDraft(number, "São Paulo", "", "1ª Vara", "Execução Fiscal") for number in numbers],
    )


def _bootstrap(tmp_path: Path):
    db_path = tmp_path / "courtbatch.db"
    initialize_schema(db_path)
    catalog = BatchCatalogService(BatchRepo(db_path), BatchStatusRepo(db_path), ProcessRepo(db_path))
    return db_path, catalog


def test_list_and_get_batches_with_status(tmp_path: Path) -> None:
    db_path, catalog = _bootstrap(tmp_path)
    esaj = _create(db_path, SourceSystem.ESAJ, ["1000001-23.2024.8.26.0100"])
    eproc = _create(db_path, SourceSystem.EPROC, ["5000001-23.2024.4.03.6100"])

    listed = catalog.list_batches()
    assert [entry.batch.id for entry in listed] == [eproc.id, esaj.id]
    assert [entry.batch.id for entry in catalog.list_batches(SourceSystem.ESAJ)] == [esaj.id]

    entry = catalog.get_batch(esaj.id)
    assert entry.status.status is BatchState.PROCESSING
    assert [record.process_number for record in catalog.list_processes(esaj.id)] == ["1000001-23.2024.8.26.0100"]

    with pytest.raises(BatchNotFoundError):
        catalog.get_batch(eproc.id + 10)


def test_delete_batch_cascades_to_records_and_status(tmp_path: Path) -> None:
    db_path, catalog = _bootstrap(tmp_path)
    batch = _create(db_path, SourceSystem.EPROC, ["5000001-23.2024.4.03.6100", "5000002-23.2024.4.03.6100"])

    catalog.delete_batch(batch.id)

    with get_connection(db_path) as conn:
        processes = conn.execute("SELECT COUNT(*) FROM processes").fetchone()[0]
        statuses = conn.execute("SELECT COUNT(*) FROM batch_status").fetchone()[0]
    assert processes == 0
    assert statuses == 0
    assert ProcessRepo(db_path).find_existing(["5000001-23.2024.4.03.6100"]) == {}

    with pytest.raises(BatchNotFoundError):
        catalog.delete_batch(batch.id)


def test_summary_and_processing_listing(tmp_path: Path) -> None:
    db_path, catalog = _bootstrap(tmp_path)
    done = _create(db_path, SourceSystem.EPROC, ["5000001-23.2024.4.03.6100"])
    open_batch = _create(db_path, SourceSystem.EPROC, ["5000002-23.2024.4.03.6100", "5000003-23.2024.4.03.6100"])
    _create(db_path, SourceSystem.ESAJ, ["1000001-23.2024.8.26.0100"])

    repo = ProcessRepo(db_path)
    repo.mark_enriched(repo.list_for_batch(done.id)[0].id, respondent="Fulano", amount=Decimal("5"))
    BatchStatusTracker(BatchRepo(db_path), repo, BatchStatusRepo(db_path)).refresh(done.id)

    processing = catalog.list_processing(SourceSystem.EPROC)
    assert [entry.batch.id for entry in processing] == [open_batch.id]

    summary = catalog.summary(SourceSystem.EPROC)
    assert summary.batches == 2
    assert summary.total_processes == 3
    assert summary.processed_processes == 1
    assert summary.pending_processes == 2
    assert summary.percent_complete == 33.33

    assert catalog.summary().total_processes == 4


def test_resume_enqueues_processing_and_halted_batches(tmp_path: Path) -> None:
    db_path, catalog = _bootstrap(tmp_path)
    first = _create(db_path, SourceSystem.EPROC, ["5000001-23.2024.4.03.6100"])
    halted = _create(db_path, SourceSystem.EPROC, ["5000002-23.2024.4.03.6100"])
    _create(db_path, SourceSystem.ESAJ, ["1000001-23.2024.8.26.0100"])
    BatchStatusRepo(db_path).mark_error(halted.id, "session expired")

    queue = FakeQueue()
    resumed = catalog.resume(queue, SourceSystem.EPROC)

    assert resumed == [first.id, halted.id]
    assert queue.enqueued == [(first.id, SourceSystem.EPROC), (halted.id, SourceSystem.EPROC)]
