from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from courtbatch.domain.models.process import ProcessDraft


@dataclass(slots=True)
class ManifestHeader:
    distribution_date: date
    system_token: str
    description: str


@dataclass(slots=True)
class ExtractedManifest:
    header: ManifestHeader
    processes: list[ProcessDraft] = field(default_factory=list)
    pages: int = 0
    rows_found: int = 0
    internal_duplicates: int = 0
