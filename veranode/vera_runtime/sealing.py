# veranode/vera_runtime/sealing.py
from __future__ import annotations

"""
Identity sealing for stored records.

Vote and rumor records must not say who created them, but the finality
engine still has to credit or debit that person's points. The record
therefore carries a *seal*: the profile id encrypted with AES-GCM under a
key derived from the server secret, with the rumor id bound as associated
data so a seal copied onto another rumor fails to open.

API overview
------------
- derive_key(secret)                  -> bytes
- Sealer(key).seal(profile_id, rumor_id)   -> token: str (URL-safe base64)
- Sealer(key).unseal(token, rumor_id)      -> profile_id: str
"""

import base64
import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import IntegrityViolation

NONCE_LEN = 12
_KDF_CONTEXT = b"veranode/seal/v1|"


def derive_key(secret: str) -> bytes:
    """32-byte AES key from the process secret (domain separated)."""
    return hashlib.sha256(_KDF_CONTEXT + secret.encode("utf-8")).digest()


def _b64e(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).decode("ascii")


def _b64d(s: str) -> bytes:
    return base64.urlsafe_b64decode(s.encode("ascii"))


class Sealer:
    def __init__(self, key: bytes) -> None:
        if len(key) not in (16, 24, 32):
            raise ValueError("AES-GCM key length must be 16, 24, or 32 bytes")
        self._aes = AESGCM(bytes(key))

    def seal(self, profile_id: str, rumor_id: str) -> str:
        nonce = os.urandom(NONCE_LEN)
        ct = self._aes.encrypt(nonce, profile_id.encode("utf-8"), rumor_id.encode("utf-8"))
        return _b64e(nonce + ct)

    def unseal(self, token: str, rumor_id: str) -> str:
        """
        Raises IntegrityViolation if the token was altered, belongs to a
        different rumor, or was sealed under another key.
        """
        try:
            raw = _b64d(token)
            nonce, ct = raw[:NONCE_LEN], raw[NONCE_LEN:]
            pt = self._aes.decrypt(nonce, ct, rumor_id.encode("utf-8"))
        except (InvalidTag, ValueError) as e:
            raise IntegrityViolation("SEAL_INVALID", f"identity seal for rumor {rumor_id} does not open") from e
        return pt.decode("utf-8")
