from __future__ import annotations

from pathlib import Path

from courtbatch.core.time import now_utc_iso
from courtbatch.domain.models.batch import BatchState, BatchStatus
from courtbatch.infrastructure.db.sqlite import get_connection


class BatchStatusRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def get(self, batch_id: int) -> BatchStatus | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM batch_status WHERE batch_id = ?", (batch_id,)).fetchone()
        return self._to_model(row) if row else None

    def upsert(self, status: BatchStatus) -> None:
        with get_connection(self.db_path) as conn:
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
                    error_message,
                    started_at,
                    finished_at,
                    updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(batch_id) DO UPDATE SET
                    total_processes = excluded.total_processes,
                    processed_processes = excluded.processed_processes,
                    pending_processes = excluded.pending_processes,
                    error_processes = excluded.error_processes,
                    percent_complete = excluded.percent_complete,
                    status = excluded.status,
                    error_message = excluded.error_message,
                    started_at = COALESCE(batch_status.started_at, excluded.started_at),
                    finished_at = excluded.finished_at,
                    updated_at = excluded.updated_at
                """,
                (
                    status.batch_id,
                    status.total_processes,
                    status.processed_processes,
                    status.pending_processes,
                    status.error_processes,
                    status.percent_complete,
                    status.status.value,
                    status.error_message,
                    status.started_at,
                    status.finished_at,
                    status.updated_at,
                ),
            )
            conn.commit()

    def mark_error(self, batch_id: int, message: str) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                UPDATE batch_status
                SET status = ?,
                    error_message = ?,
                    updated_at = ?
                WHERE batch_id = ?
                """,
                (BatchState.ERROR.value, message, now_utc_iso(), batch_id),
            )
            conn.commit()

    def list_batch_ids_by_status(self, status: BatchState, system: str | None = None) -> list[int]:
        query = """
            SELECT s.batch_id
            FROM batch_status AS s
            JOIN batches AS b ON b.id = s.batch_id
            WHERE s.status = ?
        """
        params: list[object] = [status.value]
        if system:
            query += " AND b.system = ?"
            params.append(system)
        query += " ORDER BY s.batch_id ASC"
        with get_connection(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [int(row["batch_id"]) for row in rows]

    @staticmethod
    def _to_model(row) -> BatchStatus:
        return BatchStatus(
            batch_id=int(row["batch_id"]),
            total_processes=int(row["total_processes"]),
            processed_processes=int(row["processed_processes"]),
            pending_processes=int(row["pending_processes"]),
            error_processes=int(row["error_processes"]),
            percent_complete=float(row["percent_complete"]),
            status=BatchState(row["status"]),
            error_message=row["error_message"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            updated_at=row["updated_at"],
        )
