from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable

from courtbatch.core.config import DEFAULT_SESSION_TTL_SECONDS
from courtbatch.core.errors import SessionExpiredError
from courtbatch.core.time import now_utc, now_utc_iso
from courtbatch.domain.models.session import ServiceSession
from courtbatch.infrastructure.db.repos.session_repo import SessionRepo

logger = logging.getLogger(__name__)


class SessionStore:
    """Expiring per-system token cache backed by the ``service_sessions`` table.

    Tokens are refreshed out-of-band by an operator; every scrape call reads.
    """

    def __init__(self, repo: SessionRepo, *, clock: Callable[[], datetime] = now_utc) -> None:
        self.repo = repo
        self._clock = clock
        self._cache: dict[str, ServiceSession] = {}
        self._lock = threading.Lock()

    def get_token(self, system: str) -> str:
        now = self._clock()
        with self._lock:
            cached = self._cache.get(system)
        if cached is not None and not cached.is_expired(now):
            return cached.token

        stored = self.repo.get(system)
        if stored is None:
            raise SessionExpiredError(f"No session token stored for {system}; refresh it first.")
        if stored.is_expired(now):
            raise SessionExpiredError(
                f"Session token for {system} expired at {stored.expires_at.isoformat()}; refresh it first."
            )
        with self._lock:
            self._cache[system] = stored
        return stored.token

    def refresh(
        self,
        system: str,
        token: str,
        *,
        ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
    ) -> ServiceSession:
        token = token.strip()
        if not token:
            raise ValueError("Session token must not be empty.")
        session = ServiceSession(
            system=system,
            token=token,
            expires_at=self._clock() + timedelta(seconds=ttl_seconds),
            updated_at=now_utc_iso(),
        )
        self.repo.upsert(session)
        with self._lock:
            self._cache[system] = session
        logger.info("Session for %s refreshed, expires at %s", system, session.expires_at.isoformat())
        return session

    def describe(self, system: str) -> ServiceSession | None:
        return self.repo.get(system)
