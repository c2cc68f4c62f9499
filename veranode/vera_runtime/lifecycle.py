"""
veranode/vera_runtime/lifecycle.py
----------------------------------

Rumor lifecycle state machine.

    ACTIVE --(deadline | early lock)--> LOCKED --(finalize)--> FINAL

Transitions only move forward. Each one is appended to
rumor["transitions"] so the state sequence can be audited.

Rumor records live under state["rumors"][rumor_id]:

    {
        "id": str,
        "content": str,
        "area_of_vote": str,
        "posted_at": float,
        "voting_ends_at": float,
        "is_locked": bool,
        "is_final": bool,
        "final_decision": "FACT" | "LIE" | None,
        "previous_hash": str,      # "" until final
        "current_hash": str,       # "" until final
        "lock_reason": str | None, # "deadline" | "early_lock"
        "locked_at": float | None,
        "finalized_at": float | None,
        "poster_seal": str,
        "tallies": {...},          # running counters, see empty_tallies()
        "final_stats": {...} | None,
        "transitions": [{"state": str, "at": float}, ...],
    }

Stats visibility: while ACTIVE the running tallies are public, while
LOCKED they are withheld (Hidden), and once FINAL the frozen final_stats
are public forever.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from ..errors import Conflict, ValidationFailed

STATE_ACTIVE = "ACTIVE"
STATE_LOCKED = "LOCKED"
STATE_FINAL = "FINAL"

STATE_ORDER = (STATE_ACTIVE, STATE_LOCKED, STATE_FINAL)

VOTE_FACT = "FACT"
VOTE_LIE = "LIE"
VOTE_TYPES = (VOTE_FACT, VOTE_LIE)

LOCK_DEADLINE = "deadline"
LOCK_EARLY = "early_lock"

MAX_CONTENT_LEN = 2000


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DurationPolicy:
    min_duration_sec: float = 0.0
    max_duration_sec: float = 7 * 24 * 60 * 60

    @classmethod
    def from_config(cls, voting: Dict[str, Any]) -> "DurationPolicy":
        return cls(
            min_duration_sec=float(voting.get("min_duration_sec", cls.min_duration_sec)),
            max_duration_sec=float(voting.get("max_duration_sec", cls.max_duration_sec)),
        )


@dataclass(frozen=True)
class EarlyLockPolicy:
    """
    Lock before the deadline once participation is high and the outcome
    is no longer in doubt. min_total_votes == 0 disables early locking.

    - min_total_votes: at least this many votes cast
    - min_within_area_fraction: share of votes cast from inside the area
    - decisive_margin: share of total weight held by the leading side
    """

    min_total_votes: int = 0
    min_within_area_fraction: float = 0.5
    decisive_margin: float = 0.75

    @classmethod
    def from_config(cls, early: Dict[str, Any]) -> "EarlyLockPolicy":
        return cls(
            min_total_votes=int(early.get("min_total_votes", 0)),
            min_within_area_fraction=float(early.get("min_within_area_fraction", 0.5)),
            decisive_margin=float(early.get("decisive_margin", 0.75)),
        )

    @property
    def enabled(self) -> bool:
        return self.min_total_votes > 0

    def should_lock(self, tallies: Dict[str, Any]) -> bool:
        if not self.enabled:
            return False
        total = int(tallies.get("total_votes", 0))
        if total < self.min_total_votes:
            return False
        if total and tallies.get("within_area_votes", 0) / total < self.min_within_area_fraction:
            return False
        fact_w = float(tallies.get("fact_weight", 0.0))
        lie_w = float(tallies.get("lie_weight", 0.0))
        total_w = fact_w + lie_w
        if total_w <= 0:
            return False
        return max(fact_w, lie_w) / total_w >= self.decisive_margin


# ---------------------------------------------------------------------------
# Tagged stats view
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Visible:
    stats: Dict[str, Any]


@dataclass(frozen=True)
class Hidden:
    pass


HIDDEN = Hidden()
StatsView = Union[Visible, Hidden]


def empty_tallies() -> Dict[str, Any]:
    return {
        "total_votes": 0,
        "fact_votes": 0,
        "lie_votes": 0,
        "fact_weight": 0.0,
        "lie_weight": 0.0,
        "within_area_votes": 0,
        "outside_area_votes": 0,
    }


def add_vote_to_tallies(tallies: Dict[str, Any], vote: Dict[str, Any]) -> None:
    tallies["total_votes"] += 1
    if vote["vote_type"] == VOTE_FACT:
        tallies["fact_votes"] += 1
        tallies["fact_weight"] += float(vote["weight"])
    else:
        tallies["lie_votes"] += 1
        tallies["lie_weight"] += float(vote["weight"])
    if vote["is_within_area"]:
        tallies["within_area_votes"] += 1
    else:
        tallies["outside_area_votes"] += 1


def tallies_from_votes(votes: List[Dict[str, Any]]) -> Dict[str, Any]:
    t = empty_tallies()
    for v in votes:
        add_vote_to_tallies(t, v)
    return t


def stats_view(rumor: Dict[str, Any]) -> StatsView:
    st = state_of(rumor)
    if st == STATE_LOCKED:
        return HIDDEN
    if st == STATE_FINAL:
        return Visible(dict(rumor.get("final_stats") or {}))
    return Visible(dict(rumor["tallies"]))


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def state_of(rumor: Dict[str, Any]) -> str:
    if rumor.get("is_final"):
        return STATE_FINAL
    if rumor.get("is_locked"):
        return STATE_LOCKED
    return STATE_ACTIVE


def _transition(rumor: Dict[str, Any], target: str, at: float) -> None:
    current = state_of(rumor)
    if STATE_ORDER.index(target) != STATE_ORDER.index(current) + 1:
        raise Conflict(
            "ILLEGAL_TRANSITION",
            f"rumor {rumor['id']} cannot move {current} -> {target}",
        )
    rumor.setdefault("transitions", []).append({"state": target, "at": float(at)})


def validate_content(content: Any) -> str:
    if not isinstance(content, str) or not content.strip():
        raise ValidationFailed("EMPTY_CONTENT", "rumor content must not be empty")
    text = content.strip()
    if len(text) > MAX_CONTENT_LEN:
        raise ValidationFailed("CONTENT_TOO_LONG", f"rumor content exceeds {MAX_CONTENT_LEN} characters")
    return text


def validate_window(posted_at: float, voting_ends_at: float, policy: DurationPolicy) -> None:
    duration = float(voting_ends_at) - float(posted_at)
    if duration <= 0:
        raise ValidationFailed("INVALID_DURATION", "votingEndsAt must be after the posting time")
    if duration < policy.min_duration_sec:
        raise ValidationFailed(
            "INVALID_DURATION",
            f"voting window must be at least {int(policy.min_duration_sec)} seconds",
        )
    if duration > policy.max_duration_sec:
        raise ValidationFailed(
            "INVALID_DURATION",
            f"voting window must not exceed {int(policy.max_duration_sec)} seconds",
        )


def validate_vote_type(vote_type: Any) -> str:
    vt = str(vote_type or "").strip().upper()
    if vt not in VOTE_TYPES:
        raise ValidationFailed("INVALID_VOTE_TYPE", "voteType must be FACT or LIE")
    return vt


def new_rumor(
    rumor_id: str,
    content: str,
    area_of_vote: str,
    posted_at: float,
    voting_ends_at: float,
    poster_seal: str,
) -> Dict[str, Any]:
    return {
        "id": rumor_id,
        "content": content,
        "area_of_vote": area_of_vote,
        "posted_at": float(posted_at),
        "voting_ends_at": float(voting_ends_at),
        "is_locked": False,
        "is_final": False,
        "final_decision": None,
        "previous_hash": "",
        "current_hash": "",
        "lock_reason": None,
        "locked_at": None,
        "finalized_at": None,
        "poster_seal": poster_seal,
        "tallies": empty_tallies(),
        "final_stats": None,
        "transitions": [{"state": STATE_ACTIVE, "at": float(posted_at)}],
    }


def lock_reason_due(rumor: Dict[str, Any], now: float, early: EarlyLockPolicy) -> Optional[str]:
    """Why an ACTIVE rumor should lock now, or None."""
    if state_of(rumor) != STATE_ACTIVE:
        return None
    if float(now) >= float(rumor["voting_ends_at"]):
        return LOCK_DEADLINE
    if early.should_lock(rumor["tallies"]):
        return LOCK_EARLY
    return None


def lock(rumor: Dict[str, Any], now: float, reason: str) -> None:
    _transition(rumor, STATE_LOCKED, now)
    rumor["is_locked"] = True
    rumor["locked_at"] = float(now)
    rumor["lock_reason"] = reason


def mark_final(
    rumor: Dict[str, Any],
    *,
    decision: str,
    final_stats: Dict[str, Any],
    previous_hash: str,
    current_hash: str,
    now: float,
) -> None:
    _transition(rumor, STATE_FINAL, now)
    rumor["is_final"] = True
    rumor["final_decision"] = decision
    rumor["final_stats"] = dict(final_stats)
    rumor["previous_hash"] = previous_hash
    rumor["current_hash"] = current_hash
    rumor["finalized_at"] = float(now)


def require_accepting_votes(rumor: Dict[str, Any]) -> None:
    st = state_of(rumor)
    if st == STATE_FINAL:
        raise Conflict("RUMOR_FINAL", "voting on this rumor is closed and the decision is final")
    if st == STATE_LOCKED:
        raise Conflict("RUMOR_LOCKED", "voting on this rumor is locked")


def check_invariants(rumor: Dict[str, Any]) -> List[str]:
    """Returns a list of broken invariants (empty when the record is sound)."""
    problems: List[str] = []
    final = bool(rumor.get("is_final"))
    if final != (rumor.get("final_decision") is not None):
        problems.append("final_decision set iff is_final")
    if final != bool(rumor.get("current_hash")):
        problems.append("current_hash non-empty iff is_final")
    if final and not rumor.get("is_locked"):
        problems.append("final rumor must be locked")
    seq = [t.get("state") for t in rumor.get("transitions", [])]
    if tuple(seq) != STATE_ORDER[: len(seq)]:
        problems.append(f"transition sequence {seq} is not a prefix of {list(STATE_ORDER)}")
    return problems
