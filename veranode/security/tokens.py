import json
import hmac
import time
import base64
import hashlib
import secrets
from typing import Dict, Any, Optional

from ..config import get_secret

ALGO = "HS256"

ROLE_USER = "user"
ROLE_ADMIN = "admin"


def _b64u(x: bytes) -> str:
    return base64.urlsafe_b64encode(x).rstrip(b"=").decode("ascii")


def _b64ud(s: str) -> bytes:
    return base64.urlsafe_b64decode(s + "=" * (-len(s) % 4))


def _sign(secret: bytes, data: bytes) -> str:
    return _b64u(hmac.new(secret, data, hashlib.sha256).digest())


def issue_token(sub: str, role: str = ROLE_USER, ttl_sec: int = 3600, secret: Optional[str] = None) -> Dict[str, Any]:
    """
    Compact HS256 token. `sid` is the session id the in-memory SessionStore
    keys the raw secret key under; the key itself never enters the token.
    """
    key = (secret or get_secret()).encode()
    now = int(time.time())
    exp = now + int(ttl_sec)
    sid = _b64u(secrets.token_bytes(16))

    payload: Dict[str, Any] = {
        "sub": str(sub),
        "role": role,
        "sid": sid,
        "iat": now,
        "exp": exp,
    }
    header = {"typ": "JWT", "alg": ALGO}

    h = _b64u(json.dumps(header, separators=(",", ":")).encode())
    p = _b64u(json.dumps(payload, separators=(",", ":")).encode())
    sig = _sign(key, f"{h}.{p}".encode())
    return {"token": f"{h}.{p}.{sig}", "expires": exp, "sid": sid}


def verify_token(token: str, secret: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Payload for a well-formed, correctly signed, unexpired token; else None."""
    try:
        h, p, s = token.split(".")
    except (AttributeError, ValueError):
        return None
    key = (secret or get_secret()).encode()
    if not hmac.compare_digest(s, _sign(key, f"{h}.{p}".encode())):
        return None
    try:
        payload = json.loads(_b64ud(p))
    except (ValueError, UnicodeDecodeError):
        return None
    if not isinstance(payload, dict):
        return None
    if int(payload.get("exp", 0)) < int(time.time()):
        return None
    return payload
