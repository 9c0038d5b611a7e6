"""
Per-browser registry of backend auth clients.

Each signed-in browser owns one auth client on the server. The `cms_session`
cookie only carries the opaque record id; access and refresh tokens never
leave the process. Records are kept in memory, so a restart signs everyone
out and several workers do not share sign-ins.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
import secrets
import time

DEFAULT_TTL_SECONDS = 7 * 24 * 3600


@dataclass
class ClientSessionRecord:
    """One browser's auth client and the unix time it stops being valid."""

    session_id: str
    auth: Any
    expires_at: Optional[int] = None

    def expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at < int(now if now is not None else time.time())


class SessionStore:
    def __init__(self) -> None:
        self._records: Dict[str, ClientSessionRecord] = {}

    def create(self, *, auth: Any, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> ClientSessionRecord:
        record = ClientSessionRecord(
            session_id=secrets.token_urlsafe(24),
            auth=auth,
            expires_at=int(time.time()) + ttl_seconds,
        )
        self._records[record.session_id] = record
        return record

    def get(self, session_id: str) -> Optional[ClientSessionRecord]:
        """Return the live record for `session_id`; stale ones are evicted."""
        record = self._records.get(session_id)
        if record is not None and record.expired():
            del self._records[session_id]
            return None
        return record

    def delete(self, session_id: str) -> None:
        self._records.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._records)
