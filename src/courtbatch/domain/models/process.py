from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

MAX_RETRIES_EXCEEDED = "MAX_RETRIES_EXCEEDED"


@dataclass(slots=True)
class ProcessDraft:
    """One manifest row as reconstructed from the PDF, before enrichment."""

    process_number: str
    district: str
    forum: str
    division: str
    class_name: str


@dataclass(slots=True)
class ProcessRecord:
    id: int
    batch_id: int
    process_number: str
    district: str
    forum: str
    division: str
    class_name: str
    amount: Decimal | None
    respondent: str | None
    enriched: bool
    failed: bool
    error_count: int
    last_error: str | None
    created_at: str
    updated_at: str
