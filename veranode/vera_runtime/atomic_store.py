from __future__ import annotations

"""
Snapshot persistence for engine state.

- Whole-state JSON snapshot (canonical key order) per save
- Temp file + fsync + os.replace, then directory fsync
- Rolling backups (.bak1 .. .bakN); load falls back primary -> bak1 -> ...

Only the snapshot is durable. Sessions (raw secret keys held for a
logged-in user) are never handed to this store.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

log = logging.getLogger(__name__)

JsonDict = Dict[str, Any]
PathLike = Union[str, Path]


def _fsync_dir(dir_path: Path) -> None:
    # Not supported on every platform (e.g. Windows); the replace itself is still atomic.
    try:
        fd = os.open(str(dir_path), os.O_DIRECTORY)
    except (AttributeError, OSError):
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def dump_snapshot(obj: JsonDict) -> bytes:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
        _fsync_dir(path.parent)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def read_snapshot(path: Path) -> Optional[JsonDict]:
    if not path.exists():
        return None
    try:
        obj = json.loads(path.read_bytes().decode("utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        log.warning("unreadable snapshot %s: %s", path, e)
        return None
    return obj if isinstance(obj, dict) else None


class AtomicStore:
    def __init__(self, path: PathLike, keep_backups: int = 3) -> None:
        self.path = Path(path)
        self.keep_backups = max(0, int(keep_backups))

    def _backup(self, i: int) -> Path:
        return self.path.with_suffix(self.path.suffix + f".bak{i}")

    def candidates(self) -> List[Path]:
        return [self.path] + [self._backup(i) for i in range(1, self.keep_backups + 1)]

    def load(self) -> Optional[JsonDict]:
        for p in self.candidates():
            obj = read_snapshot(p)
            if obj is not None:
                if p != self.path:
                    log.warning("primary snapshot unusable, recovered state from %s", p.name)
                return obj
        return None

    def _rotate(self) -> None:
        if self.keep_backups <= 0 or not self.path.exists():
            return
        for i in range(self.keep_backups, 1, -1):
            src = self._backup(i - 1)
            if src.exists():
                os.replace(str(src), str(self._backup(i)))
        os.replace(str(self.path), str(self._backup(1)))

    def save(self, state: JsonDict) -> None:
        """Serialize first so a bad state never costs us a backup slot."""
        data = dump_snapshot(state)
        self._rotate()
        atomic_write_bytes(self.path, data)
