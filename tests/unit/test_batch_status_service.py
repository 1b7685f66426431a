from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from courtbatch.application.services.batch_status_service import BatchStatusTracker
from courtbatch.core.errors import BatchNotFoundError
from courtbatch.domain.models.batch import BatchState, SourceSystem
from courtbatch.domain.models.process import ProcessDraft
from courtbatch.infrastructure.db.repos.batch_repo import BatchRepo
from courtbatch.infrastructure.db.repos.batch_status_repo import BatchStatusRepo
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo
from courtbatch.infrastructure.db.sqlite import initialize_schema


def _bootstrap(tmp_path: Path, count: int):
    db_path = tmp_path / "courtbatch.db"
    initialize_schema(db_path)
    batch = BatchRepo(db_path).create_with_processes(
        system=SourceSystem.ESAJ,
        state_code="SP",
        distribution_date=date(2024, 1, 5),
        description="Processos distribuídos em 05/01/2024 Sistema SAJ",
        drafts=[
            ProcessDraft(f"{1000000 + i}-23.2024.8.26.0100", "São Paulo", "Foro Central", "1ª Vara", "Monitória")
            for i in range(count)
        ],
    )
    tracker = BatchStatusTracker(BatchRepo(db_path), ProcessRepo(db_path), BatchStatusRepo(db_path))
    return db_path, batch, tracker


def test_refresh_reports_partial_progress(tmp_path: Path) -> None:
    db_path, batch, tracker = _bootstrap(tmp_path, 3)
    repo = ProcessRepo(db_path)
    records = repo.list_for_batch(batch.id)
    repo.mark_enriched(records[0].id, respondent="Fulano", amount=Decimal("1.00"))
    repo.mark_exhausted(records[1].id, error_count=5)

    status = tracker.refresh(batch.id)

    assert status.total_processes == 3
    assert status.processed_processes == 2
    assert status.pending_processes == 1
    assert status.error_processes == 1
    assert status.percent_complete == 66.67
    assert status.status is BatchState.PROCESSING
    assert status.finished_at is None
    assert BatchRepo(db_path).get_by_id(batch.id).processed_count == 2


def test_refresh_completes_and_keeps_first_finish_time(tmp_path: Path) -> None:
    db_path, batch, tracker = _bootstrap(tmp_path, 1)
    repo = ProcessRepo(db_path)
    record = repo.list_for_batch(batch.id)[0]
    repo.mark_enriched(record.id, respondent="Fulano", amount=Decimal("1.00"))

    first = tracker.refresh(batch.id)
    second = tracker.refresh(batch.id)

    assert first.status is BatchState.COMPLETED
    assert first.percent_complete == 100.0
    assert second.finished_at == first.finished_at
    assert second.started_at == first.started_at
    assert BatchRepo(db_path).get_by_id(batch.id).processed is True


def test_refresh_clears_previous_error(tmp_path: Path) -> None:
    db_path, batch, tracker = _bootstrap(tmp_path, 1)
    tracker.mark_error(batch.id, "session expired")
    assert BatchStatusRepo(db_path).get(batch.id).status is BatchState.ERROR

    status = tracker.refresh(batch.id)

    assert status.status is BatchState.PROCESSING
    assert BatchStatusRepo(db_path).get(batch.id).error_message is None


def test_ensure_batch_raises_for_unknown_id(tmp_path: Path) -> None:
    _, batch, tracker = _bootstrap(tmp_path, 1)
    assert tracker.ensure_batch(batch.id).id == batch.id
    with pytest.raises(BatchNotFoundError):
        tracker.ensure_batch(batch.id + 1)
