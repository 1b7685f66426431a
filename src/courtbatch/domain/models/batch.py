from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum


class SourceSystem(str, Enum):
    """The two court-record systems a manifest can be enriched from."""

    ESAJ = "ESAJ"
    EPROC = "EPROC"

    @classmethod
    def parse(cls, value: str) -> SourceSystem:
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown source system: {value!r}") from None


class BatchState(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(slots=True)
class Batch:
    id: int
    system: SourceSystem
    state_code: str
    distribution_date: date
    description: str
    total_processes: int
    processed_count: int
    processed: bool
    created_at: str
    updated_at: str


@dataclass(slots=True)
class BatchStatus:
    batch_id: int
    total_processes: int
    processed_processes: int
    pending_processes: int
    error_processes: int
    percent_complete: float
    status: BatchState
    error_message: str | None
    started_at: str | None
    finished_at: str | None
    updated_at: str
