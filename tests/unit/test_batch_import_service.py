from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

from courtbatch.application.services.batch_import_service import BatchImporter
from courtbatch.core.config import ImportSettings
from courtbatch.core.errors import DuplicateImportError, StructuralFormatError, ValidationError
from courtbatch.domain.models.batch import BatchState, SourceSystem
from courtbatch.domain.models.manifest import ExtractedManifest, ManifestHeader
from courtbatch.domain.models.process import ProcessDraft
from courtbatch.infrastructure.db.repos.batch_repo import BatchRepo
from courtbatch.infrastructure.db.repos.batch_status_repo import BatchStatusRepo
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo
from courtbatch.infrastructure.db.sqlite import initialize_schema


class FakeQueue:
    def __init__(self) -> None:
        self.enqueued: list[tuple[int, SourceSystem]] = []

    def enqueue(self, batch_id: int, system: SourceSystem) -> dict:
        self.enqueued.append((batch_id, system))
        return {"batch_id": batch_id}


class FakeExtractor:
    def __init__(self, manifest: ExtractedManifest) -> None:
        self.manifest = manifest
        self.calls: list[SourceSystem] = []

    def extract(self, pdf_bytes: bytes, system: SourceSystem) -> ExtractedManifest:
        self.calls.append(system)
        return self.manifest


def _manifest(numbers: list[str], system_token: str = "EPROC", duplicates: int = 0) -> ExtractedManifest:
    return ExtractedManifest(
        header=ManifestHeader(
            distribution_date=date(2024, 1, 5),
            system_token=system_token,
            description=f"Processos distribuídos em 05/01/2024 Sistema {system_token}",
        ),
        processes=[
            ProcessDraft(
                process_number=number,
                district="São Paulo",
                forum="",
                division="1ª Vara",
                class_name="Execução Fiscal",
            )
            for number in numbers
        ],
        pages=1,
        rows_found=len(numbers) + duplicates,
        internal_duplicates=duplicates,
    )


def _bootstrap(tmp_path: Path) -> tuple[Path, FakeQueue, BatchImporter]:
    db_path = tmp_path / "courtbatch.db"
    initialize_schema(db_path)
    queue = FakeQueue()
    importer = BatchImporter(
        ProcessRepo(db_path),
        BatchRepo(db_path),
        queue,
        settings=ImportSettings(lookup_chunk_size=2, insert_chunk_size=2),
    )
    return db_path, queue, importer


def test_import_creates_batch_records_status_and_enqueues(tmp_path: Path) -> None:
    db_path, queue, importer = _bootstrap(tmp_path)
    numbers = [f"500000{i}-23.2024.4.03.6100" for i in range(5)]

    result = importer.import_manifest(_manifest(numbers, duplicates=1), SourceSystem.EPROC, "sp")

    assert result.total_processes == 5
    assert result.state_code == "SP"
    assert result.duplicates_ignored == 0
    assert result.internal_duplicates == 1
    assert queue.enqueued == [(result.batch_id, SourceSystem.EPROC)]

    batch = BatchRepo(db_path).get_by_id(result.batch_id)
    assert batch.total_processes == 5
    assert batch.distribution_date == date(2024, 1, 5)
    assert batch.processed is False

    status = BatchStatusRepo(db_path).get(result.batch_id)
    assert status.status is BatchState.PROCESSING
    assert status.pending_processes == 5

    records = ProcessRepo(db_path).list_for_batch(result.batch_id)
    assert sorted(record.process_number for record in records) == sorted(numbers)
    assert all(not record.enriched and record.error_count == 0 for record in records)


def test_import_skips_numbers_already_stored(tmp_path: Path) -> None:
    db_path, queue, importer = _bootstrap(tmp_path)
    first = importer.import_manifest(
        _manifest(["5000001-23.2024.4.03.6100", "5000002-23.2024.4.03.6100"]),
        SourceSystem.EPROC,
        "SP",
    )

    second = importer.import_manifest(
        _manifest(["5000002-23.2024.4.03.6100", "5000003-23.2024.4.03.6100"]),
        SourceSystem.EPROC,
        "SP",
    )

    assert second.batch_id != first.batch_id
    assert second.total_processes == 1
    assert second.duplicates_ignored == 1
    stored = ProcessRepo(db_path).get_by_number("5000002-23.2024.4.03.6100")
    assert stored.batch_id == first.batch_id


def test_fully_duplicated_import_requeues_owning_batch_once(tmp_path: Path) -> None:
    _, queue, importer = _bootstrap(tmp_path)
    numbers = ["5000001-23.2024.4.03.6100", "5000002-23.2024.4.03.6100"]
    first = importer.import_manifest(_manifest(numbers), SourceSystem.EPROC, "SP")
    queue.enqueued.clear()

    with pytest.raises(DuplicateImportError) as excinfo:
        importer.import_manifest(_manifest(numbers), SourceSystem.EPROC, "SP")

    assert excinfo.value.existing_batch_id == first.batch_id
    assert queue.enqueued == [(first.batch_id, SourceSystem.EPROC)]


def test_import_rejects_invalid_state_and_empty_manifest(tmp_path: Path) -> None:
    _, queue, importer = _bootstrap(tmp_path)

    with pytest.raises(ValidationError):
        importer.import_manifest(_manifest(["5000001-23.2024.4.03.6100"]), SourceSystem.EPROC, "São Paulo")
    with pytest.raises(StructuralFormatError):
        importer.import_manifest(_manifest([]), SourceSystem.EPROC, "SP")
    assert queue.enqueued == []


def test_import_pdf_maps_saj_header_to_esaj(tmp_path: Path) -> None:
    db_path = tmp_path / "courtbatch.db"
    initialize_schema(db_path)
    queue = FakeQueue()
    extractor = FakeExtractor(_manifest(["1000001-23.2024.8.26.0100"], system_token="SAJ"))
    importer = BatchImporter(ProcessRepo(db_path), BatchRepo(db_path), queue, extractor=extractor)

    result = importer.import_pdf(b"%PDF-fake", SourceSystem.EPROC, "SP")

    assert extractor.calls == [SourceSystem.EPROC]
    assert result.system is SourceSystem.ESAJ
    assert queue.enqueued == [(result.batch_id, SourceSystem.ESAJ)]
