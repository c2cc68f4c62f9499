"""
veranode/vera_runtime/identity.py
---------------------------------

Identity & nullifier layer.

A user's only credential is a 256-bit secret key, shown to them once at
registration (or recovery). The server stores a keyed lookup hash of it,
never the key itself:

    profile["secret_key_hash"] = HMAC-SHA256(pepper, secret_key)

Votes are not linked to profiles. They are identified by a nullifier:

    nullifier = SHA256(secret_key + rumor_id)

The same key always yields the same nullifier for a rumor, so a second
vote collides; different rumors yield unrelated digests, so nullifiers
from one user can't be grouped together.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import time
from typing import Any, Dict, Optional

from ..errors import KeyExpired, ValidationFailed
from .hashing import is_hex, sha256_hex

SECRET_KEY_BYTES = 32
SECRET_KEY_HEX_LEN = SECRET_KEY_BYTES * 2
DAY_SEC = 24 * 60 * 60

AREA_GENERAL = "General"
AREAS = ("SEECS", "NBS", "ASAB", "SINES", "SCME", "S3H", AREA_GENERAL)


def issue_secret_key() -> str:
    """Fresh 256-bit key as 64 lowercase hex chars."""
    return secrets.token_hex(SECRET_KEY_BYTES)


def validate_secret_key(secret_key: Any) -> str:
    """
    Format check before any lookup: exactly 64 lowercase hex characters.
    Clients trim and lower-case pasted keys; the server does not guess.
    """
    if not isinstance(secret_key, str):
        raise ValidationFailed("INVALID_SECRET_KEY", "secret key must be a string")
    if not is_hex(secret_key, SECRET_KEY_HEX_LEN):
        raise ValidationFailed(
            "INVALID_SECRET_KEY",
            f"secret key must be {SECRET_KEY_HEX_LEN} lowercase hexadecimal characters",
        )
    return secret_key


def lookup_hash(pepper: bytes, secret_key: str) -> str:
    return hmac.new(pepper, secret_key.encode("utf-8"), hashlib.sha256).hexdigest()


def derive_nullifier(secret_key: str, rumor_id: str) -> str:
    return sha256_hex(f"{secret_key}{rumor_id}")


def validate_area(area: Any) -> str:
    if area not in AREAS:
        raise ValidationFailed("INVALID_AREA", f"area must be one of {', '.join(AREAS)}")
    return str(area)


def is_within_area(voter_area: str, rumor_area: str) -> bool:
    """General rumors count every voter as in-area."""
    return rumor_area == AREA_GENERAL or voter_area == rumor_area


# ---------------------------------------------------------------------------
# Key expiry
# ---------------------------------------------------------------------------


def key_expiry(issued_at: float, ttl_days: float) -> Optional[float]:
    """ttl_days <= 0 means keys never expire."""
    if ttl_days <= 0:
        return None
    return float(issued_at) + float(ttl_days) * DAY_SEC


def is_key_expired(profile: Dict[str, Any], now: Optional[float] = None) -> bool:
    exp = profile.get("key_expires_at")
    if exp is None:
        return False
    return float(now if now is not None else time.time()) >= float(exp)


def require_unexpired(profile: Dict[str, Any], now: Optional[float] = None) -> None:
    if is_key_expired(profile, now):
        raise KeyExpired(
            "KEY_EXPIRED",
            "secret key has expired; recover the account to receive a new key",
        )
