"""
Rumor validation clients.

The content check ("is this text genuinely an unverified rumor?") is an
external AI service. The engine only sees the verdict:

    ValidationResult(is_valid, is_rumor, reason, suggested_area)

- HttpRumorValidator   POSTs {"content": ...} to the configured URL
- LocalRumorValidator  rule-based stand-in for dev nodes without the service
- make_validator(cfg)  picks one from cfg["validator"]["driver"]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from ..errors import ValidatorUnavailable
from .identity import AREAS

log = logging.getLogger(__name__)

MIN_RUMOR_CHARS = 15


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    is_rumor: bool
    reason: str = ""
    suggested_area: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "isRumor": self.is_rumor,
            "reason": self.reason,
            "suggestedArea": self.suggested_area,
        }


class RumorValidator:
    def validate(self, content: str) -> ValidationResult:
        raise NotImplementedError


class HttpRumorValidator(RumorValidator):
    """
    Expects the service to answer with the same camelCase shape the
    client uses: {"isValid", "isRumor", "reason", "suggestedArea"}.
    """

    def __init__(self, url: str, timeout_sec: float = 10.0, session: Optional[requests.Session] = None) -> None:
        self.url = url
        self.timeout_sec = float(timeout_sec)
        self.session = session or requests.Session()

    def validate(self, content: str) -> ValidationResult:
        try:
            r = self.session.post(self.url, json={"content": content}, timeout=self.timeout_sec)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            log.warning("rumor validator unreachable at %s: %s", self.url, e)
            raise ValidatorUnavailable("VALIDATOR_UNAVAILABLE", "rumor validation service is unavailable") from e

        if not isinstance(data, dict):
            raise ValidatorUnavailable("VALIDATOR_UNAVAILABLE", "rumor validation service returned a malformed verdict")

        suggested = data.get("suggestedArea")
        return ValidationResult(
            is_valid=bool(data.get("isValid")),
            is_rumor=bool(data.get("isRumor")),
            reason=str(data.get("reason") or ""),
            suggested_area=suggested if suggested in AREAS else None,
        )


_URL_ONLY = re.compile(r"^\s*https?://\S+\s*$", re.IGNORECASE)
_GREETING = re.compile(r"^\s*(hi|hello|hey|test|asdf)\b", re.IGNORECASE)


class LocalRumorValidator(RumorValidator):
    """
    Cheap rules for dev and tests: long enough, not a bare link, not a
    greeting. Suggests an area when one is named in the text.
    """

    def validate(self, content: str) -> ValidationResult:
        text = (content or "").strip()
        if len(text) < MIN_RUMOR_CHARS:
            return ValidationResult(False, False, f"content is shorter than {MIN_RUMOR_CHARS} characters")
        if _URL_ONLY.match(text):
            return ValidationResult(False, False, "a bare link is not a rumor")
        if _GREETING.match(text):
            return ValidationResult(False, False, "content does not make a claim")

        suggested = None
        upper = text.upper()
        for area in AREAS:
            if area != "General" and re.search(rf"\b{re.escape(area.upper())}\b", upper):
                suggested = area
                break
        return ValidationResult(True, True, "content reads as an unverified claim", suggested)


def make_validator(cfg: Dict[str, Any]) -> RumorValidator:
    vcfg = cfg.get("validator", {})
    driver = str(vcfg.get("driver", "local")).lower()
    if driver == "http":
        return HttpRumorValidator(str(vcfg["url"]), timeout_sec=float(vcfg.get("timeout_sec", 10.0)))
    if driver == "local":
        return LocalRumorValidator()
    raise ValueError(f"unknown validator driver: {driver}")
