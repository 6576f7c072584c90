"""
Server-side session store keyed by an opaque, client-held identifier.

The in-memory implementation is sufficient for a single process and for
tests. Sessions have a rolling lifetime: every access pushes the expiry
forward, and an expired session reads as empty.
"""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

Clock = Callable[[], float]


class SessionStore:
    """Interface the access gate relies on.

    Implementations raise :class:`humangate.errors.SessionUnavailable` when
    their backing storage cannot be reached.
    """

    def new_id(self) -> str:
        return secrets.token_urlsafe(32)

    def exists(self, session_id: str) -> bool:
        raise NotImplementedError

    def get(self, session_id: str, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, session_id: str, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, session_id: str, *keys: str) -> None:
        raise NotImplementedError

    def lock(self, session_id: str) -> threading.Lock:
        raise NotImplementedError

    def sweep(self) -> int:
        return 0


@dataclass
class _SessionRecord:
    expires_at: float
    fields: Dict[str, Any] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)


class InMemorySessionStore(SessionStore):
    def __init__(self, max_age_seconds: float = 3600, clock: Clock = time.time) -> None:
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self._records: Dict[str, _SessionRecord] = {}
        self._registry_lock = threading.Lock()

    def _now(self) -> float:
        return self._clock()

    def _record(self, session_id: str) -> _SessionRecord:
        # Caller holds the registry lock.
        now = self._now()
        record = self._records.get(session_id)
        if record is None:
            record = _SessionRecord(expires_at=now + self.max_age_seconds)
            self._records[session_id] = record
        elif record.expires_at <= now:
            # Expired sessions start over empty; the lock object is kept so
            # holders and waiters keep serializing on the same instance.
            record.fields.clear()
        record.expires_at = now + self.max_age_seconds
        return record

    def exists(self, session_id: str) -> bool:
        with self._registry_lock:
            record = self._records.get(session_id)
            return record is not None and record.expires_at > self._now()

    def get(self, session_id: str, key: str, default: Any = None) -> Any:
        with self._registry_lock:
            return self._record(session_id).fields.get(key, default)

    def set(self, session_id: str, key: str, value: Any) -> None:
        with self._registry_lock:
            self._record(session_id).fields[key] = value

    def delete(self, session_id: str, *keys: str) -> None:
        with self._registry_lock:
            fields = self._record(session_id).fields
            for key in keys:
                fields.pop(key, None)

    def lock(self, session_id: str) -> threading.Lock:
        with self._registry_lock:
            return self._record(session_id).lock

    def snapshot(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Copy of a live session's fields without touching its expiry."""
        with self._registry_lock:
            record = self._records.get(session_id)
            if record is None or record.expires_at <= self._now():
                return None
            return dict(record.fields)

    def sweep(self) -> int:
        with self._registry_lock:
            now = self._now()
            stale = [sid for sid, record in self._records.items() if record.expires_at <= now]
            for sid in stale:
                del self._records[sid]
            return len(stale)

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._records)


__all__ = ["InMemorySessionStore", "SessionStore"]
