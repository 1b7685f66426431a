from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from courtbatch.application.services.session_service import SessionStore
from courtbatch.core.errors import SessionExpiredError
from courtbatch.infrastructure.db.repos.session_repo import SessionRepo
from courtbatch.infrastructure.db.sqlite import initialize_schema


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 1, 5, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


def _store(tmp_path: Path, clock: FakeClock) -> SessionStore:
    db_path = tmp_path / "courtbatch.db"
    initialize_schema(db_path)
    return SessionStore(SessionRepo(db_path), clock=clock)


def test_missing_token_raises_session_expired(tmp_path: Path) -> None:
    store = _store(tmp_path, FakeClock())
    with pytest.raises(SessionExpiredError):
        store.get_token("EPROC")


def test_refresh_then_read_until_ttl_elapses(tmp_path: Path) -> None:
    clock = FakeClock()
    store = _store(tmp_path, clock)

    session = store.refresh("EPROC", "  tok-1 ")
    assert session.token == "tok-1"
    assert session.expires_at == clock.now + timedelta(hours=22)
    assert store.get_token("EPROC") == "tok-1"

    clock.now += timedelta(hours=21, minutes=59)
    assert store.get_token("EPROC") == "tok-1"

    clock.now += timedelta(minutes=1)
    with pytest.raises(SessionExpiredError):
        store.get_token("EPROC")


def test_refresh_is_persisted_for_other_stores(tmp_path: Path) -> None:
    clock = FakeClock()
    writer = _store(tmp_path, clock)
    writer.refresh("EPROC", "tok-2", ttl_seconds=60)

    reader = SessionStore(SessionRepo(tmp_path / "courtbatch.db"), clock=clock)
    assert reader.get_token("EPROC") == "tok-2"
    assert reader.describe("EPROC").expires_at == clock.now + timedelta(seconds=60)
    assert reader.describe("ESAJ") is None


def test_refresh_replaces_expired_token(tmp_path: Path) -> None:
    clock = FakeClock()
    store = _store(tmp_path, clock)
    store.refresh("EPROC", "old", ttl_seconds=10)
    clock.now += timedelta(seconds=11)
    with pytest.raises(SessionExpiredError):
        store.get_token("EPROC")

    store.refresh("EPROC", "new")
    assert store.get_token("EPROC") == "new"


def test_refresh_rejects_blank_token(tmp_path: Path) -> None:
    store = _store(tmp_path, FakeClock())
    with pytest.raises(ValueError):
        store.refresh("EPROC", "   ")
