import threading
import time

import pytest

from conftest import DAY, HOUR, post, signup
from veranode.config import default_config
from veranode.errors import (
    Conflict,
    Forbidden,
    IntegrityViolation,
    KeyExpired,
    NotFound,
    PolicyRejected,
    Unauthorized,
)
from veranode.vera_runtime import lifecycle


def _points(engine):
    return sum(p["points"] for p in engine.state["profiles"].values())


def _scenario(engine):
    _, poster = signup(engine, "SEECS", 0)
    _, a = signup(engine, "SEECS", 10)
    _, b = signup(engine, "NBS", 5)
    _, c = signup(engine, "SEECS", 0)
    rumor = post(engine, poster, area="SEECS")
    engine.cast_vote(a, rumor["id"], "FACT")
    engine.cast_vote(b, rumor["id"], "LIE")
    engine.cast_vote(c, rumor["id"], "FACT")
    return rumor, poster, a, b, c


def test_register_never_stores_raw_key(engine):
    key, profile = engine.register("ASAB")
    assert profile["secret_key_hash"] != key
    blob = engine.store.path.read_text()
    assert key not in blob


def test_weighted_scenario_end_to_end(engine, clock):
    rumor, poster, a, b, c = _scenario(engine)
    rid = rumor["id"]
    votes = {v["vote_type"] + str(v["is_within_area"]): v for v in engine.state["votes"][rid].values()}
    assert sorted(v["weight"] for v in engine.state["votes"][rid].values()) == [1.0, 3.5, 16.0]
    assert votes["LIEFalse"]["weight"] == 3.5

    clock.advance(3 * HOUR)
    decision = engine.finalize(rid)
    assert decision.decision == "FACT"

    profiles = engine.state["profiles"]
    assert profiles[a.profile_id]["points"] == 11.0
    assert profiles[c.profile_id]["points"] == 1.0
    assert profiles[b.profile_id]["points"] == 4.0
    assert profiles[poster.profile_id]["points"] == 5.0
    assert profiles[a.profile_id]["correct_votes"] == 1
    assert profiles[b.profile_id]["incorrect_votes"] == 1

    final = engine.get_rumor(rid)
    assert final["is_final"] and final["final_decision"] == "FACT"
    assert final["current_hash"] == engine.state["chain"][0]["current_hash"]
    assert lifecycle.check_invariants(final) == []


def test_finalize_is_idempotent(engine, clock):
    rumor, *_ = _scenario(engine)
    clock.advance(3 * HOUR)
    first = engine.finalize(rumor["id"])
    points_after = _points(engine)
    events_after = len(engine.state["rep_events"])

    second = engine.finalize(rumor["id"])
    assert second.already_final
    assert second.decision == first.decision
    assert _points(engine) == points_after
    assert len(engine.state["rep_events"]) == events_after
    assert len(engine.state["chain"]) == 1


def test_concurrent_finalize_applies_once(engine, clock):
    rumor, *_ = _scenario(engine)
    clock.advance(3 * HOUR)
    before = _points(engine)
    barrier = threading.Barrier(6)

    def run():
        barrier.wait()
        engine.finalize(rumor["id"])

    threads = [threading.Thread(target=run) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    # +1 +1 -1 for voters, +5 for the poster
    assert _points(engine) == before + 6.0
    assert len(engine.state["chain"]) == 1


def test_same_nullifier_concurrently_yields_one_vote(engine):
    _, poster = signup(engine)
    _, voter = signup(engine)
    rumor = post(engine, poster)
    barrier = threading.Barrier(8)
    ok, conflicts = [], []

    def run():
        barrier.wait()
        try:
            ok.append(engine.cast_vote(voter, rumor["id"], "FACT"))
        except Conflict as e:
            conflicts.append(e.code)

    threads = [threading.Thread(target=run) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(ok) == 1
    assert conflicts == ["ALREADY_VOTED"] * 7
    assert len(engine.state["votes"][rumor["id"]]) == 1
    assert engine.state["rumors"][rumor["id"]]["tallies"]["total_votes"] == 1


def test_votes_carry_no_profile_id(engine):
    _, poster = signup(engine)
    _, voter = signup(engine)
    rumor = post(engine, poster)
    vote = engine.cast_vote(voter, rumor["id"], "LIE")
    assert voter.profile_id not in repr(vote)
    assert engine.vote_status(voter, rumor["id"]) == {"has_voted": True, "vote_type": "LIE"}
    assert engine.vote_status(poster, rumor["id"])["has_voted"] is False


def test_deadline_lock_hides_stats_and_closes_voting(engine, clock):
    _, poster = signup(engine)
    _, voter = signup(engine)
    rumor = post(engine, poster, hours=1)
    engine.cast_vote(poster, rumor["id"], "FACT")
    assert engine.stats_view(rumor["id"]).stats["total_votes"] == 1

    clock.advance(HOUR)
    assert engine.stats_view(rumor["id"]) is lifecycle.HIDDEN
    assert engine.get_rumor(rumor["id"])["lock_reason"] == lifecycle.LOCK_DEADLINE
    with pytest.raises(Conflict) as ei:
        engine.cast_vote(voter, rumor["id"], "FACT")
    assert ei.value.code == "RUMOR_LOCKED"


def test_early_lock(make_engine):
    cfg = default_config()
    cfg["early_lock"]["min_total_votes"] = 2
    engine = make_engine(cfg)
    _, poster = signup(engine)
    voters = [signup(engine)[1] for _ in range(3)]
    rumor = post(engine, poster)

    engine.cast_vote(voters[0], rumor["id"], "FACT")
    assert not engine.get_rumor(rumor["id"])["is_locked"]
    engine.cast_vote(voters[1], rumor["id"], "FACT")
    locked = engine.get_rumor(rumor["id"])
    assert locked["is_locked"] and locked["lock_reason"] == lifecycle.LOCK_EARLY
    with pytest.raises(Conflict):
        engine.cast_vote(voters[2], rumor["id"], "LIE")


def test_tick_locks_and_finalizes(engine, clock):
    _, poster = signup(engine)
    r1 = post(engine, poster, hours=1)
    r2 = post(engine, poster, hours=5)
    clock.advance(2 * HOUR)
    out = engine.tick()
    assert out == {"locked": [r1["id"]], "finalized": [r1["id"]]}
    assert engine.get_rumor(r2["id"])["is_locked"] is False
    assert engine.verify_chain().ok
    assert engine.tick() == {"locked": [], "finalized": []}


def test_policy_rejection_stores_nothing(engine):
    _, poster = signup(engine)
    with pytest.raises(PolicyRejected) as ei:
        post(engine, poster, content="This is not a rumor, just my opinion on lunch")
    assert ei.value.code == "INVALID_RUMOR"
    assert ei.value.details["validation"]["isRumor"] is False
    assert engine.state["rumors"] == {}


def test_recovery_keeps_vote_linkage(engine):
    key, voter = signup(engine, "NBS", 3)
    _, poster = signup(engine)
    rumor = post(engine, poster)
    old_token = engine.login(key)["token"]
    engine.cast_vote(voter, rumor["id"], "FACT")

    new_key, profile = engine.recover(key)
    assert new_key != key
    assert profile["id"] == voter.profile_id and profile["points"] == 3.0

    with pytest.raises(Unauthorized):
        engine.login(key)
    with pytest.raises(Unauthorized):
        engine.session_for(old_token)

    fresh = engine.session_for(engine.login(new_key)["token"])
    with pytest.raises(Conflict) as ei:
        engine.cast_vote(fresh, rumor["id"], "LIE")
    assert ei.value.code == "ALREADY_VOTED"
    assert engine.vote_status(fresh, rumor["id"])["vote_type"] == "FACT"
    assert len(engine.my_votes(fresh)) == 1


def test_expired_key_must_recover(engine, clock):
    key, _ = signup(engine)
    clock.advance(181 * DAY)
    with pytest.raises(KeyExpired):
        engine.login(key)
    new_key, _ = engine.recover(key)
    assert engine.login(new_key)["profile"]["key_expires_at"] > clock()


def test_auto_block_and_admin_unblock(engine, clock):
    _, poster = signup(engine, "SEECS", 0)
    _, heavy = signup(engine, "SEECS", 10)
    _, sinking = signup(engine, "SEECS", -49.5)
    rumor = post(engine, poster)
    engine.cast_vote(heavy, rumor["id"], "FACT")
    engine.cast_vote(sinking, rumor["id"], "LIE")
    clock.advance(3 * HOUR)
    engine.finalize(rumor["id"])

    prof = engine.get_profile(sinking.profile_id)
    assert prof["points"] == -50.5 and prof["is_blocked"]
    assert engine.user_stats(sinking.profile_id)["points"] == -50.5
    assert engine.user_stats(sinking.profile_id)["account_status"] == "BLOCKED"
    assert [p["id"] for p in engine.blocked_profiles()] == [sinking.profile_id]

    other = post(engine, poster)
    with pytest.raises(Forbidden) as ei:
        engine.cast_vote(sinking, other["id"], "FACT")
    assert ei.value.code == "USER_BLOCKED"

    engine.unblock(profile_id=sinking.profile_id)
    assert engine.user_stats(sinking.profile_id)["account_status"] == "WARNING"
    engine.cast_vote(sinking, other["id"], "FACT")


def test_listing_filters(engine, clock):
    _, poster = signup(engine, "NBS")
    a = post(engine, poster, area="NBS", hours=1)
    b = post(engine, poster, area="General", hours=4)
    clock.advance(2 * HOUR)
    assert [r["id"] for r in engine.list_rumors(status="locked")] == [a["id"]]
    assert [r["id"] for r in engine.list_rumors(area="General")] == [b["id"]]
    assert [r["id"] for r in engine.user_rumors(poster.profile_id)] == [a["id"], b["id"]]
    with pytest.raises(NotFound):
        engine.get_rumor("rmr_missing")


def test_state_survives_restart(make_engine, clock):
    engine = make_engine()
    _, poster = signup(engine)
    rumor = post(engine, poster, hours=1)
    clock.advance(2 * HOUR)
    engine.tick()

    reopened = make_engine()
    assert reopened.get_rumor(rumor["id"])["is_final"]
    assert reopened.verify_chain().ok
    assert reopened.dashboard_stats()["blockchain"]["total_blocks"] == 1


def test_tampered_chain_is_reported(engine, clock):
    _, poster = signup(engine)
    post(engine, poster, hours=1)
    clock.advance(2 * HOUR)
    engine.tick()
    engine.state["chain"][0]["decision"] = "FACT" if engine.state["chain"][0]["decision"] == "LIE" else "LIE"
    assert not engine.verify_chain().ok
    with pytest.raises(IntegrityViolation) as ei:
        engine.require_chain_intact()
    assert ei.value.code == "CHAIN_TAMPERED"


def test_sweep_loop_starts_and_stops(make_engine, clock):
    cfg = default_config()
    cfg["sweep"]["interval_sec"] = 0.2
    engine = make_engine(cfg)
    _, poster = signup(engine)
    rumor = post(engine, poster, hours=1)
    clock.advance(2 * HOUR)

    engine.start_loop()
    assert engine.status()["sweep_running"]
    deadline = time.time() + 5
    while time.time() < deadline and not engine.state["rumors"][rumor["id"]]["is_final"]:
        time.sleep(0.05)
    engine.stop_loop()

    assert engine.state["rumors"][rumor["id"]]["is_final"]
    assert not engine.status()["sweep_running"]


def test_short_voting_window_is_accepted(engine, clock):
    _, poster = signup(engine)
    rumor = engine.post_rumor(poster.profile_id, "The shuttle skips the north gate today", "SEECS",
                              engine.now() + 30 * 60)
    assert rumor["voting_ends_at"] - rumor["posted_at"] == 30 * 60
    clock.advance(31 * 60)
    assert engine.get_rumor(rumor["id"])["is_locked"]


def test_recovery_during_in_flight_vote_keeps_one_vote(engine, monkeypatch):
    from veranode import vera_engine

    key, voter = signup(engine)
    _, poster = signup(engine)
    rumor = post(engine, poster)

    entered, release = threading.Event(), threading.Event()
    real_weight = vera_engine.compute_weight

    def slow_weight(*args, **kwargs):
        entered.set()
        release.wait(5)
        return real_weight(*args, **kwargs)

    monkeypatch.setattr(vera_engine, "compute_weight", slow_weight)
    outcome = []

    def old_key_vote():
        try:
            engine.cast_vote(voter, rumor["id"], "FACT")
            outcome.append("accepted")
        except Unauthorized as e:
            outcome.append(e.code)

    t = threading.Thread(target=old_key_vote)
    t.start()
    assert entered.wait(5)
    new_key, _ = engine.recover(key)
    release.set()
    t.join()
    monkeypatch.setattr(vera_engine, "compute_weight", real_weight)

    assert outcome == ["AUTH_REQUIRED"]
    fresh = engine.session_for(engine.login(new_key)["token"])
    engine.cast_vote(fresh, rumor["id"], "LIE")
    with pytest.raises(Conflict):
        engine.cast_vote(fresh, rumor["id"], "FACT")
    assert len(engine.state["votes"][rumor["id"]]) == 1
    assert engine.get_profile(voter.profile_id)["rumors_voted"] == 1


def test_admin_views_tolerate_concurrent_writes(engine):
    _, poster = signup(engine)
    stop = threading.Event()
    errors = []

    def writer():
        while not stop.is_set():
            engine.register("NBS")
            post(engine, poster)

    def reader():
        try:
            for _ in range(300):
                engine.dashboard_stats()
                engine.blocked_profiles()
        except RuntimeError as e:
            errors.append(e)

    w = threading.Thread(target=writer)
    w.start()
    readers = [threading.Thread(target=reader) for _ in range(3)]
    for r in readers:
        r.start()
    for r in readers:
        r.join()
    stop.set()
    w.join()

    assert errors == []
    stats = engine.dashboard_stats()
    assert stats["users"]["total"] == len(engine.state["profiles"])
    assert stats["rumors"]["total"] == len(engine.state["rumors"])
