from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

from courtbatch.core.time import now_utc_iso
from courtbatch.domain.models.process import MAX_RETRIES_EXCEEDED, ProcessRecord
from courtbatch.infrastructure.db.sqlite import chunked, get_connection


@dataclass(slots=True)
class ProcessCounts:
    total: int
    enriched: int
    failed: int

    @property
    def pending(self) -> int:
        return self.total - self.enriched


class ProcessRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def find_existing(self, process_numbers: list[str], *, chunk_size: int = 1000) -> dict[str, int]:
        """Map already-stored process numbers to the batch that owns them."""
        found: dict[str, int] = {}
        unique_numbers = list(dict.fromkeys(process_numbers))
        with get_connection(self.db_path) as conn:
            for chunk in chunked(unique_numbers, chunk_size):
                placeholders = ", ".join("?" for _ in chunk)
                rows = conn.execute(
                    f"""
                    SELECT process_number, batch_id
                    FROM processes
                    WHERE process_number IN ({placeholders})
                    ORDER BY id ASC
                    """,
                    chunk,
                ).fetchall()
                for row in rows:
                    found[row["process_number"]] = int(row["batch_id"])
        return found

    def get_by_number(self, process_number: str) -> ProcessRecord | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT * FROM processes WHERE process_number = ?",
                (process_number,),
            ).fetchone()
        return self._to_model(row) if row else None

    def get_by_id(self, record_id: int) -> ProcessRecord | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM processes WHERE id = ?", (record_id,)).fetchone()
        return self._to_model(row) if row else None

    def list_unenriched(self, batch_id: int, system: str, *, limit: int = 100) -> list[ProcessRecord]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                """
                SELECT p.*
                FROM processes AS p
                JOIN batches AS b ON b.id = p.batch_id
                WHERE p.enriched = 0
                  AND b.id = ?
                  AND b.system = ?
                ORDER BY p.id ASC
                LIMIT ?
                """,
                (batch_id, system, limit),
            ).fetchall()
        return [self._to_model(row) for row in rows]

    def list_for_batch(self, batch_id: int) -> list[ProcessRecord]:
        with get_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT * FROM processes WHERE batch_id = ? ORDER BY id ASC",
                (batch_id,),
            ).fetchall()
        return [self._to_model(row) for row in rows]

    def mark_enriched(self, record_id: int, *, respondent: str, amount: Decimal) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE processes
                SET respondent = ?,
                    amount = ?,
                    enriched = 1,
                    failed = 0,
                    updated_at = ?
                WHERE id = ?
                """,
                (respondent, str(amount), now_utc_iso(), record_id),
            )
            conn.commit()

    def record_failure(self, record_id: int, *, error_count: int, last_error: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE processes
                SET error_count = ?,
                    last_error = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (error_count, last_error, now_utc_iso(), record_id),
            )
            conn.commit()

    def mark_exhausted(self, record_id: int, *, error_count: int) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE processes
                SET enriched = 1,
                    failed = 1,
                    error_count = ?,
                    last_error = ?,
                    amount = NULL,
                    respondent = NULL,
                    updated_at = ?
                WHERE id = ?
                """,
                (error_count, MAX_RETRIES_EXCEEDED, now_utc_iso(), record_id),
            )
            conn.commit()

    def record_last_error(self, record_id: int, last_error: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                "UPDATE processes SET last_error = ?, updated_at = ? WHERE id = ?",
                (last_error, now_utc_iso(), record_id),
            )
            conn.commit()

    def count_for_batch(self, batch_id: int) -> ProcessCounts:
        with get_connection(self.db_path) as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN enriched = 1 THEN 1 ELSE 0 END) AS enriched,
                    SUM(CASE WHEN failed = 1 THEN 1 ELSE 0 END) AS failed
                FROM processes
                WHERE batch_id = ?
                """,
                (batch_id,),
            ).fetchone()
        return ProcessCounts(
            total=int(row["total"] or 0),
            enriched=int(row["enriched"] or 0),
            failed=int(row["failed"] or 0),
        )

    def count_for_system(self, system: str | None = None) -> ProcessCounts:
        query = """
            SELECT
                COUNT(*) AS total,
                SUM(CASE WHEN p.enriched = 1 THEN 1 ELSE 0 END) AS enriched,
                SUM(CASE WHEN p.failed = 1 THEN 1 ELSE 0 END) AS failed
            FROM processes AS p
            JOIN batches AS b ON b.id = p.batch_id
        """
        params: tuple = ()
        if system:
            query += " WHERE b.system = ?"
            params = (system,)
        with get_connection(self.db_path) as conn:
            row = conn.execute(query, params).fetchone()
        return ProcessCounts(
            total=int(row["total"] or 0),
            enriched=int(row["enriched"] or 0),
            failed=int(row["failed"] or 0),
        )

    @staticmethod
    def _to_model(row) -> ProcessRecord:
        return ProcessRecord(
            id=int(row["id"]),
            batch_id=int(row["batch_id"]),
            process_number=row["process_number"],
            district=row["district"],
            forum=row["forum"],
            division=row["division"],
            class_name=row["class_name"],
            amount=Decimal(row["amount"]) if row["amount"] is not None else None,
            respondent=row["respondent"],
            enriched=bool(row["enriched"]),
            failed=bool(row["failed"]),
            error_count=int(row["error_count"] or 0),
            last_error=row["last_error"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
