import pytest

from veranode.errors import Conflict
from veranode.vera_runtime import lifecycle
from veranode.vera_runtime.finality import FinalityPolicy, decide, finalize
from veranode.vera_runtime.weighting import compute_weight


def _locked_rumor():
    r = lifecycle.new_rumor("R1", "The cafeteria is switching vendors", "SEECS", 0.0, 10.0, "seal")
    lifecycle.lock(r, 10.0, lifecycle.LOCK_DEADLINE)
    return r


def _scenario_votes():
    return [
        {"nullifier": "A", "vote_type": "FACT", "weight": compute_weight(10, True), "is_within_area": True},
        {"nullifier": "B", "vote_type": "LIE", "weight": compute_weight(5, False), "is_within_area": False},
        {"nullifier": "C", "vote_type": "FACT", "weight": compute_weight(0, True), "is_within_area": True},
    ]


def test_weighted_scenario_decides_fact():
    d = finalize(_locked_rumor(), _scenario_votes(), FinalityPolicy())
    assert d.decision == "FACT"
    assert d.fact_weight == 17.0
    assert d.lie_weight == 3.5
    assert d.per_voter_delta["A"] > 0
    assert d.per_voter_delta["C"] > 0
    assert d.per_voter_delta["B"] < 0
    assert d.poster_delta == 5.0
    assert d.final_stats["total_votes"] == 3
    assert d.final_stats["within_area_votes"] == 2


def test_tie_breaks_to_policy():
    assert decide(2.0, 2.0) == "LIE"
    assert decide(2.0, 2.0, "FACT") == "FACT"
    d = finalize(_locked_rumor(), [], FinalityPolicy())
    assert d.decision == "LIE"
    assert d.poster_delta == -10.0


def test_scaled_deltas():
    pol = FinalityPolicy(scale_by_weight=True)
    d = finalize(_locked_rumor(), _scenario_votes(), pol)
    assert d.per_voter_delta == {"A": 16.0, "B": -3.5, "C": 1.0}


def test_active_rumor_cannot_be_finalized():
    r = lifecycle.new_rumor("R2", "Parking rules change next month", "NBS", 0.0, 10.0, "seal")
    with pytest.raises(Conflict):
        finalize(r, [], FinalityPolicy())


def test_already_final_returns_sealed_decision_without_deltas():
    r = _locked_rumor()
    d = finalize(r, _scenario_votes(), FinalityPolicy())
    lifecycle.mark_final(r, decision=d.decision, final_stats=d.final_stats, previous_hash="0" * 64,
                         current_hash="f" * 64, now=20.0)
    again = finalize(r, _scenario_votes() + [
        {"nullifier": "D", "vote_type": "LIE", "weight": 100.0, "is_within_area": True}
    ], FinalityPolicy())
    assert again.already_final
    assert again.decision == "FACT"
    assert again.per_voter_delta == {}
    assert again.poster_delta == 0.0
