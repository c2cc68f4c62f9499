from __future__ import annotations

"""
Rollback scope for multi-record mutations.

Usage (inside the engine's state lock):

    uow = UnitOfWork(state)
    uow.touch("rumors", rumor_id)      # capture before mutating
    uow.touch("profiles", profile_id)
    ... mutate state ...
    # on failure:
    uow.rollback()

Keyed namespaces (dicts of records) are restored record by record.
Append-only lists (chain, rep_events, events) are truncated back to their
length at the start of the unit.
"""

import copy
from typing import Any, Dict, Iterable, Tuple

_MISSING = object()

APPEND_ONLY = ("chain", "rep_events", "events")


class UnitOfWork:
    def __init__(self, state: Dict[str, Any], append_only: Iterable[str] = APPEND_ONLY) -> None:
        self.state = state
        self._saved: Dict[Tuple[str, str], Any] = {}
        self._lengths = {name: len(state.setdefault(name, [])) for name in append_only}
        self.closed = False

    def touch(self, namespace: str, key: str) -> None:
        """Capture a record's pre-image. Only the first touch counts."""
        slot = (namespace, key)
        if slot in self._saved:
            return
        ns = self.state.setdefault(namespace, {})
        current = ns.get(key, _MISSING)
        self._saved[slot] = current if current is _MISSING else copy.deepcopy(current)

    def touched(self) -> int:
        return len(self._saved)

    def rollback(self) -> None:
        for (namespace, key), before in self._saved.items():
            ns = self.state.setdefault(namespace, {})
            if before is _MISSING:
                ns.pop(key, None)
            else:
                ns[key] = before
        for name, length in self._lengths.items():
            del self.state[name][length:]
        self.closed = True

    def commit(self) -> None:
        self._saved.clear()
        self.closed = True
