"""
Wire models for the HTTP surface.

Requests are pydantic models accepting the client's camelCase names.
Responses are built by the to_* helpers below from engine records, which
use snake_case internally and carry fields (seals, key hashes) that must
never leave the server.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..vera_runtime import lifecycle
from ..vera_runtime.identity import AREA_GENERAL

HIDDEN_MARKER = "hidden"

_STATS_FIELDS = (
    ("totalVotes", "total_votes"),
    ("factVotes", "fact_votes"),
    ("lieVotes", "lie_votes"),
    ("factWeight", "fact_weight"),
    ("lieWeight", "lie_weight"),
    ("underAreaVotes", "within_area_votes"),
    ("notUnderAreaVotes", "outside_area_votes"),
)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(_CamelModel):
    area: str = AREA_GENERAL


class SecretKeyRequest(_CamelModel):
    secret_key: str = Field(..., alias="secretKey")


class AdminLoginRequest(_CamelModel):
    admin_key: str = Field(..., alias="adminKey")


class UnblockRequest(_CamelModel):
    secret_key: Optional[str] = Field(None, alias="secretKey")
    profile_id: Optional[str] = Field(None, alias="profileId")


class ValidateRequest(_CamelModel):
    content: str


class CreateRumorRequest(_CamelModel):
    content: str
    area_of_vote: str = Field(AREA_GENERAL, alias="areaOfVote")
    voting_ends_at: datetime = Field(..., alias="votingEndsAt")


class VoteRequest(_CamelModel):
    vote_type: str = Field(..., alias="voteType")


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------


def iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(float(ts), tz=timezone.utc).isoformat().replace("+00:00", "Z")


def to_epoch(dt: datetime) -> float:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def to_stats(view: lifecycle.StatsView) -> Dict[str, Union[int, float, str]]:
    if isinstance(view, lifecycle.Hidden):
        return {name: HIDDEN_MARKER for name, _ in _STATS_FIELDS}
    return {name: view.stats.get(key, 0) for name, key in _STATS_FIELDS}


def to_rumor(rumor: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": rumor["id"],
        "content": rumor["content"],
        "areaOfVote": rumor["area_of_vote"],
        "postedAt": iso(rumor["posted_at"]),
        "votingEndsAt": iso(rumor["voting_ends_at"]),
        "status": lifecycle.state_of(rumor),
        "isLocked": bool(rumor["is_locked"]),
        "isFinal": bool(rumor["is_final"]),
        "finalDecision": rumor["final_decision"],
        "previousHash": rumor["previous_hash"],
        "currentHash": rumor["current_hash"],
        "stats": to_stats(lifecycle.stats_view(rumor)),
    }


def to_vote(vote: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "rumorId": vote["rumor_id"],
        "nullifier": vote["nullifier"],
        "voteType": vote["vote_type"],
        "weight": vote["weight"],
        "isWithinArea": vote["is_within_area"],
        "timestamp": iso(vote["timestamp"]),
    }


def to_profile(profile: Dict[str, Any], *, now: float) -> Dict[str, Any]:
    exp = profile.get("key_expires_at")
    return {
        "id": profile["id"],
        "area": profile["area"],
        "points": profile["points"],
        "isBlocked": bool(profile.get("is_blocked")),
        "createdAt": iso(profile["created_at"]),
        "keyExpiresAt": iso(exp),
        "isKeyExpired": exp is not None and now >= float(exp),
    }


def to_blocked(profile: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "profileId": profile["id"],
        "area": profile["area"],
        "points": profile["points"],
        "isBlocked": True,
        "blockedAt": iso(profile.get("blocked_at")),
        "createdAt": iso(profile["created_at"]),
    }


def camel(d: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in d.items():
        head, *rest = k.split("_")
        key = head + "".join(p.title() for p in rest)
        out[key] = camel(v) if isinstance(v, dict) else v
    return out


def to_rumor_list(rumors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [to_rumor(r) for r in rumors]
