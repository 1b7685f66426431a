from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Protocol

from courtbatch.application.services.table_extraction_service import TableExtractor, resolve_batch_system
from courtbatch.core.config import ImportSettings
from courtbatch.core.errors import DuplicateImportError, StructuralFormatError, ValidationError
from courtbatch.domain.models.batch import SourceSystem
from courtbatch.domain.models.manifest import ExtractedManifest
from courtbatch.infrastructure.db.repos.batch_repo import BatchRepo
from courtbatch.infrastructure.db.repos.process_repo import ProcessRepo

logger = logging.getLogger(__name__)


class BatchQueue(Protocol):
    """Delivers "process batch N" messages to the worker of a system."""

    def enqueue(self, batch_id: int, system: SourceSystem) -> object: ...


@dataclass(slots=True)
class ImportResult:
    batch_id: int
    system: SourceSystem
    state_code: str
    total_processes: int
    duplicates_ignored: int
    internal_duplicates: int


class BatchImporter:
    def __init__(
        self,
        process_repo: ProcessRepo,
        batch_repo: BatchRepo,
        queue: BatchQueue,
        *,
        extractor: TableExtractor | None = None,
        settings: ImportSettings | None = None,
    ) -> None:
        self.process_repo = process_repo
        self.batch_repo = batch_repo
        self.queue = queue
        self.extractor = extractor or TableExtractor()
        self.settings = settings or ImportSettings()

    def import_pdf(self, pdf_bytes: bytes, system: SourceSystem, state_code: str) -> ImportResult:
        manifest = self.extractor.extract(pdf_bytes, system)
        return self.import_manifest(manifest, resolve_batch_system(manifest.header, system), state_code)

    def import_manifest(
        self,
        manifest: ExtractedManifest,
        system: SourceSystem,
        state_code: str,
    ) -> ImportResult:
        state_code = self._validate_state_code(state_code)
        if not manifest.processes:
            raise StructuralFormatError("No process numbers were found in the PDF.")

        numbers = [draft.process_number for draft in manifest.processes]
        existing = self.process_repo.find_existing(numbers, chunk_size=self.settings.lookup_chunk_size)
        new_drafts = [draft for draft in manifest.processes if draft.process_number not in existing]
        duplicates = len(manifest.processes) - len(new_drafts)
        if duplicates:
            logger.warning("%d process(es) already stored and will be ignored", duplicates)

        if not new_drafts:
            owning_batch_id = next(existing[number] for number in numbers if number in existing)
            self._requeue_existing(owning_batch_id)
            raise DuplicateImportError(
                "Every process in the PDF is already stored; no new process found.",
                existing_batch_id=owning_batch_id,
            )

        try:
            batch = self.batch_repo.create_with_processes(
                system=system,
                state_code=state_code,
                distribution_date=manifest.header.distribution_date,
                description=manifest.header.description,
                drafts=new_drafts,
                insert_chunk_size=self.settings.insert_chunk_size,
            )
        except sqlite3.IntegrityError as exc:
            raise DuplicateImportError(
                f"Another import stored some of these process numbers concurrently: {exc}"
            ) from exc

        logger.info("Batch %s created with %d process(es)", batch.id, len(new_drafts))
        self.queue.enqueue(batch.id, batch.system)

        return ImportResult(
            batch_id=batch.id,
            system=batch.system,
            state_code=state_code,
            total_processes=len(new_drafts),
            duplicates_ignored=duplicates,
            internal_duplicates=manifest.internal_duplicates,
        )

    def _requeue_existing(self, batch_id: int) -> None:
        batch = self.batch_repo.get_by_id(batch_id)
        if batch is None:
            return
        logger.info("Re-enqueueing existing batch %s", batch_id)
        self.queue.enqueue(batch.id, batch.system)

    @staticmethod
    def _validate_state_code(state_code: str) -> str:
        clean = (state_code or "").strip().upper()
        if len(clean) != 2 or not clean.isalpha():
            raise ValidationError(f"State code must be a two-letter UF, got {state_code!r}")
        return clean
