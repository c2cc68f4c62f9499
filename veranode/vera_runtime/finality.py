"""
veranode/vera_runtime/finality.py
---------------------------------

Finality & decision engine (pure part).

Given a locked rumor and all of its votes:

- Sum frozen vote weights per side. The heavier side wins; an exact tie
  resolves to FinalityPolicy.tie_break.
- Voters who sided with the decision earn `vote_reward`, the others lose
  `vote_penalty` (both multiplied by the voter's own weight when
  `scale_by_weight` is on).
- The poster earns `poster_fact_reward` when the rumor is decided FACT and
  loses `poster_lie_penalty` when it is decided LIE.

Deltas are keyed by nullifier; the engine resolves nullifiers to profiles
through the vote's identity seal and applies everything in one unit of
work together with the ledger append.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..errors import Conflict
from .lifecycle import STATE_ACTIVE, VOTE_FACT, VOTE_LIE, state_of, tallies_from_votes


@dataclass(frozen=True)
class FinalityPolicy:
    tie_break: str = VOTE_LIE
    vote_reward: float = 1.0
    vote_penalty: float = 1.0
    scale_by_weight: bool = False
    poster_fact_reward: float = 5.0
    poster_lie_penalty: float = 10.0

    @classmethod
    def from_config(cls, fin: Dict[str, Any]) -> "FinalityPolicy":
        return cls(
            tie_break=str(fin.get("tie_break", VOTE_LIE)).upper(),
            vote_reward=float(fin.get("vote_reward", 1.0)),
            vote_penalty=float(fin.get("vote_penalty", 1.0)),
            scale_by_weight=bool(fin.get("scale_by_weight", False)),
            poster_fact_reward=float(fin.get("poster_fact_reward", 5.0)),
            poster_lie_penalty=float(fin.get("poster_lie_penalty", 10.0)),
        )


@dataclass
class Decision:
    decision: str
    fact_weight: float
    lie_weight: float
    per_voter_delta: Dict[str, float] = field(default_factory=dict)
    poster_delta: float = 0.0
    final_stats: Dict[str, Any] = field(default_factory=dict)
    already_final: bool = False


def decide(fact_weight: float, lie_weight: float, tie_break: str = VOTE_LIE) -> str:
    if fact_weight > lie_weight:
        return VOTE_FACT
    if lie_weight > fact_weight:
        return VOTE_LIE
    return tie_break


def voter_delta(vote: Dict[str, Any], decision: str, policy: FinalityPolicy) -> float:
    scale = float(vote["weight"]) if policy.scale_by_weight else 1.0
    if vote["vote_type"] == decision:
        return policy.vote_reward * scale
    return -policy.vote_penalty * scale


def poster_delta(decision: str, policy: FinalityPolicy) -> float:
    return policy.poster_fact_reward if decision == VOTE_FACT else -policy.poster_lie_penalty


def finalize(rumor: Dict[str, Any], votes: List[Dict[str, Any]], policy: FinalityPolicy) -> Decision:
    """
    Compute the decision for a LOCKED rumor.

    A rumor that is already FINAL returns its sealed decision with no
    deltas, so a retried finalization can never apply points twice.
    """
    if rumor.get("is_final"):
        stats = dict(rumor.get("final_stats") or {})
        return Decision(
            decision=rumor["final_decision"],
            fact_weight=float(stats.get("fact_weight", 0.0)),
            lie_weight=float(stats.get("lie_weight", 0.0)),
            final_stats=stats,
            already_final=True,
        )
    if state_of(rumor) == STATE_ACTIVE:
        raise Conflict("ILLEGAL_TRANSITION", f"rumor {rumor['id']} must be locked before it can be finalized")

    stats = tallies_from_votes(votes)
    decision = decide(stats["fact_weight"], stats["lie_weight"], policy.tie_break)

    deltas: Dict[str, float] = {}
    for v in votes:
        deltas[v["nullifier"]] = voter_delta(v, decision, policy)

    return Decision(
        decision=decision,
        fact_weight=stats["fact_weight"],
        lie_weight=stats["lie_weight"],
        per_voter_delta=deltas,
        poster_delta=poster_delta(decision, policy),
        final_stats=stats,
    )
