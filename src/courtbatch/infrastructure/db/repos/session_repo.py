from __future__ import annotations

from pathlib import Path

from courtbatch.core.time import now_utc_iso, parse_iso
from courtbatch.domain.models.session import ServiceSession
from courtbatch.infrastructure.db.sqlite import get_connection


class SessionRepo:
    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def get(self, system: str) -> ServiceSession | None:
        with get_connection(self.db_path) as conn:
            row = conn.execute("SELECT * FROM service_sessions WHERE system = ?", (system,)).fetchone()
        return self._to_model(row) if row else None

    def upsert(self, session: ServiceSession) -> None:
        with get_connection(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO service_sessions (system, token, expires_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(system) DO UPDATE SET
                    token = excluded.token,
                    expires_at = excluded.expires_at,
                    updated_at = excluded.updated_at
                """,
                (session.system, session.token, session.expires_at.isoformat(), session.updated_at or now_utc_iso()),
            )
            conn.commit()

    @staticmethod
    def _to_model(row) -> ServiceSession:
        return ServiceSession(
            system=row["system"],
            token=row["token"],
            expires_at=parse_iso(row["expires_at"]),
            updated_at=row["updated_at"],
        )
