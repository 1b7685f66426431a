from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class ServiceSession:
    system: str
    token: str
    expires_at: datetime
    updated_at: str

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now
