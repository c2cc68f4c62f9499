from __future__ import annotations

"""
Vote weighting.

    W(vote) = P(user) * A(factor) + B(base)

A is 1.5 for voters inside the rumor's target area (every voter counts as
inside for "General" rumors) and 0.5 otherwise. The result never drops
below B, so a voter with negative reputation still has some influence.

The weight is computed once, when the vote is cast, and frozen into the
vote record. Later point changes never touch it.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

DEFAULT_BASE_WEIGHT = 1.0
WITHIN_AREA_MULTIPLIER = 1.5
OUTSIDE_AREA_MULTIPLIER = 0.5


@dataclass(frozen=True)
class WeightPolicy:
    base_weight: float = DEFAULT_BASE_WEIGHT
    within_area_multiplier: float = WITHIN_AREA_MULTIPLIER
    outside_area_multiplier: float = OUTSIDE_AREA_MULTIPLIER

    @classmethod
    def from_config(cls, voting: Dict[str, Any]) -> "WeightPolicy":
        return cls(
            base_weight=float(voting.get("base_weight", DEFAULT_BASE_WEIGHT)),
            within_area_multiplier=float(voting.get("within_area_multiplier", WITHIN_AREA_MULTIPLIER)),
            outside_area_multiplier=float(voting.get("outside_area_multiplier", OUTSIDE_AREA_MULTIPLIER)),
        )


DEFAULT_POLICY = WeightPolicy()


def proximity_multiplier(is_within_area: bool, policy: WeightPolicy = DEFAULT_POLICY) -> float:
    return policy.within_area_multiplier if is_within_area else policy.outside_area_multiplier


def compute_weight(
    user_points: float,
    is_within_area: bool,
    base_weight: Optional[float] = None,
    policy: WeightPolicy = DEFAULT_POLICY,
) -> float:
    base = policy.base_weight if base_weight is None else float(base_weight)
    weight = float(user_points) * proximity_multiplier(is_within_area, policy) + base
    return max(weight, base)
