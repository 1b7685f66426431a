from __future__ import annotations

from datetime import date
from pathlib import Path

from courtbatch.core.time import now_utc_iso
from courtbatch.domain.models.batch import Batch, BatchState, SourceSystem
from courtbatch.domain.models.process import ProcessDraft
from courtbatch.infrastructure.db.sqlite import chunked, get_connection


class BatchRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def create_with_processes(
        self,
        *,
        system: SourceSystem,
        state_code: str,
        distribution_date: date,
        description: str,
        drafts: list[ProcessDraft],
        insert_chunk_size: int = 500,
    ) -> Batch:
        """Insert a batch, its initial status and its process rows in one transaction.

        A UNIQUE violation on any process number rolls the whole batch back.
        """
        now = now_utc_iso()
        with get_connection(self.db_path) as conn:
            cursor = conn.execute(
                """
                INSERT INTO batches (
                    system,
                    state_code,
                    distribution_date,
                    description,
                    total_processes,
                    processed_count,
                    processed,
                    created_at,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, 0, 0, ?, ?)
                """,
                (
                    system.value,
                    state_code,
                    distribution_date.isoformat(),
                    description,
                    len(drafts),
                    now,
                    now,
                ),
            )
            batch_id = int(cursor.lastrowid)
            conn.execute(
                """
                INSERT INTO batch_status (
                    batch_id,
                    total_processes,
                    processed_processes,
                    pending_processes,
                    error_processes,
                    percent_complete,
                    status,
                    started_at,
                    updated_at
                ) VALUES (?, ?, 0, ?, 0, 0, ?, ?, ?)
                """,
                (batch_id, len(drafts), len(drafts), BatchState.PROCESSING.value, now, now),
            )
            for chunk in chunked(drafts, insert_chunk_size):
                conn.executemany(
                    """
                    INSERT INTO processes (
                        batch_id,
                        process_number,
                        district,
                        forum,
                        division,
                        class_name,
                        enriched,
                        failed,
                        error_count,
                        created_at,
                        updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, 0, 0, 0, ?, ?)
                    """,
                    [
                        (
                            batch_id,
                            draft.process_number,
                            draft.district,
                            draft.forum,
                            draft.division,
                            draft.class_name,
                            now,
                            now,
                        )
                        for draft in chunk
                    ],
                )
            conn.commit()
            row = conn.execute("SELECT * FROM batches WHERE id = ?", (batch_id,)).fetchone()
        return self._to_model(row)

    def get_by_id(self, batch_id: int) -> Batch | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM batches WHERE id = ?", (batch_id,)).fetchone()
        return self._to_model(row) if row else None

    def list(self, system: str | None = None, limit: int = 200) -> list[Batch]:
        with get_connection(self.db_path) as conn:
            if system:
                rows = conn.execute(
                    "SELECT * FROM batches WHERE system = ? ORDER BY id DESC LIMIT ?",
                    (system, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM batches ORDER BY id DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [self._to_model(row) for row in rows]

    def update_progress(self, batch_id: int, *, processed_count: int, total_processes: int) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE batches
                SET processed_count = ?,
                    processed = ?,
                    updated_at = ?
                WHERE id = ?
                """,
                (processed_count, int(processed_count == total_processes), now_utc_iso(), batch_id),
            )
            conn.commit()

    def delete(self, batch_id: int) -> bool:
        with get_connection(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM batches WHERE id = ?", (batch_id,))
            conn.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _to_model(row) -> Batch:
        return Batch(
            id=int(row["id"]),
            system=SourceSystem(row["system"]),
            state_code=row["state_code"],
            distribution_date=date.fromisoformat(row["distribution_date"]),
            description=row["description"],
            total_processes=int(row["total_processes"]),
            processed_count=int(row["processed_count"]),
            processed=bool(row["processed"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
