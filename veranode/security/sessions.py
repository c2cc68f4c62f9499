from __future__ import annotations

"""
In-memory session registry.

Voting needs the caller's raw secret key to derive a nullifier, but the
key must never be persisted. A login therefore parks the key here, keyed
by the token's session id, for as long as the token lives. A restart
drops every session; users simply log in again.
"""

import threading
import time
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class Session:
    sid: str
    profile_id: str
    secret_key: str
    expires: float


class SessionStore:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_sid: Dict[str, Session] = {}

    def put(self, sid: str, profile_id: str, secret_key: str, expires: float) -> Session:
        sess = Session(sid=sid, profile_id=profile_id, secret_key=secret_key, expires=float(expires))
        with self._lock:
            self._by_sid[sid] = sess
        return sess

    def get(self, sid: str, now: Optional[float] = None) -> Optional[Session]:
        t = time.time() if now is None else now
        with self._lock:
            sess = self._by_sid.get(sid)
            if sess is None:
                return None
            if sess.expires < t:
                del self._by_sid[sid]
                return None
            return sess

    def drop(self, sid: str) -> None:
        with self._lock:
            self._by_sid.pop(sid, None)

    def drop_profile(self, profile_id: str) -> int:
        """Ends every session of a profile (after re-keying)."""
        with self._lock:
            stale = [sid for sid, s in self._by_sid.items() if s.profile_id == profile_id]
            for sid in stale:
                del self._by_sid[sid]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_sid)
