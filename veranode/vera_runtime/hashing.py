from __future__ import annotations

"""
Hashing helpers.

- canonical_json_bytes(obj) -> stable serialization for hashing
- canonical_json(obj)       -> same, as str
- sha256_hex(bytes | str)
"""

import hashlib
import json
from typing import Any, Union


def canonical_json_bytes(obj: Any) -> bytes:
    # Canonical JSON for hashing: stable sort + compact separators
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")


def canonical_json(obj: Any) -> str:
    return canonical_json_bytes(obj).decode("utf-8")


def sha256_hex(data: Union[bytes, str]) -> str:
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def is_hex(s: str, length: int) -> bool:
    if not isinstance(s, str) or len(s) != length:
        return False
    return all(c in "0123456789abcdef" for c in s)
