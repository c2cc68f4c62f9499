from __future__ import annotations

"""
VeraNode engine

Owns the persisted state and is the only writer to it:

- Identity: register, login (session), recover (re-key), admin login
- Rumors: validate, post, read (stats hidden while locked), list
- Votes: cast by nullifier, vote status, caller's votes
- Lifecycle: pull-based deadline lock, early lock, sweep loop
- Finality: weighted decision + point deltas + ledger append, all in one
  unit of work
- Admin: dashboard stats, blocked profiles, unblock, chain verification

Locking
-------
- one lock per rumor serializes vote casting and finalization of that rumor
- a chain lock serializes ledger appends (the single global ordering point)
- the state lock guards every write to the state dict and the snapshot save

Order is always rumor lock -> chain lock -> state lock.
"""

import hashlib
import hmac
import logging
import os
import secrets
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from .config import default_config, get_admin_key, get_secret, load_config
from .errors import Conflict, Forbidden, NotFound, PolicyRejected, Unauthorized, ValidationFailed
from .security.sessions import Session, SessionStore
from .security.tokens import ROLE_ADMIN, ROLE_USER, issue_token, verify_token
from .vera_runtime import identity, lifecycle
from .vera_runtime.atomic_store import AtomicStore
from .vera_runtime.finality import Decision, FinalityPolicy, finalize as compute_finality
from .vera_runtime.hash_chain import ChainReport, HashChain, voting_snapshot
from .vera_runtime.reputation import ReputationRuntime
from .vera_runtime.sealing import Sealer, derive_key
from .vera_runtime.unit_of_work import UnitOfWork
from .vera_runtime.validator import RumorValidator, ValidationResult, make_validator
from .vera_runtime.weighting import WeightPolicy, compute_weight

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1
STATUS_FILTERS = ("active", "locked", "final")


def _ensure_dict(x: Any) -> dict:
    return x if isinstance(x, dict) else {}


def _ensure_list(x: Any) -> list:
    return x if isinstance(x, list) else []


def _new_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(10)}"


class VeraEngine:
    def __init__(
        self,
        data_dir: str,
        cfg: Optional[Dict[str, Any]] = None,
        *,
        validator: Optional[RumorValidator] = None,
        secret: Optional[str] = None,
        admin_key: Optional[str] = None,
        clock: Optional[Callable[[], float]] = None,
        auto_loop: Optional[bool] = None,
    ) -> None:
        self.cfg = cfg or default_config()
        self.data_dir = str(data_dir)
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)

        self._secret = secret or get_secret()
        self._admin_key = admin_key or get_admin_key()
        self._pepper = hashlib.sha256(b"veranode/lookup/v1|" + self._secret.encode("utf-8")).digest()
        self.sealer = Sealer(derive_key(self._secret))
        self.clock = clock or time.time

        self.weight_policy = WeightPolicy.from_config(self.cfg["voting"])
        self.duration_policy = lifecycle.DurationPolicy.from_config(self.cfg["voting"])
        self.early_lock = lifecycle.EarlyLockPolicy.from_config(self.cfg["early_lock"])
        self.finality_policy = FinalityPolicy.from_config(self.cfg["finality"])
        self.key_ttl_days = float(self.cfg["accounts"].get("key_ttl_days", 180))
        self.token_ttl_sec = int(self.cfg["security"].get("token_ttl_sec", 86400))

        self.validator = validator or make_validator(self.cfg)
        self.sessions = SessionStore()

        pcfg = self.cfg["persistence"]
        self.store = AtomicStore(Path(self.data_dir) / pcfg.get("filename", "vera_state.json"),
                                 keep_backups=int(pcfg.get("keep_backups", 3)))
        self.state: Dict[str, Any] = _ensure_dict(self.store.load() or {})
        self._migrate_state()

        self.reputation = ReputationRuntime(
            self.state,
            block_threshold=float(self.cfg["accounts"].get("block_threshold", -50.0)),
            warning_threshold=float(self.cfg["accounts"].get("warning_threshold", 0.0)),
        )

        self._lock = threading.RLock()
        self._chain_lock = threading.Lock()
        self._locks_guard = threading.Lock()
        self._rumor_locks: Dict[str, threading.Lock] = {}

        self._loop_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        self._startup_chain_check()

        start = self.cfg["sweep"].get("auto_start", False) if auto_loop is None else auto_loop
        if start:
            self.start_loop()

    # ----------------------- state schema ------------------

    def _migrate_state(self) -> None:
        st = self.state
        for k in ("profiles", "key_index", "rumors", "votes", "nullifier_aliases"):
            st[k] = _ensure_dict(st.get(k))
        for k in ("chain", "rep_events", "events"):
            st[k] = _ensure_list(st.get(k))
        st["schema_version"] = int(st.get("schema_version") or SCHEMA_VERSION)
        st["genesis_hash"] = str(st.get("genesis_hash") or self.cfg["ledger"]["genesis_hash"])

    def _startup_chain_check(self) -> None:
        report = self.chain.verify()
        if not report.ok:
            # Refuse nothing at boot, but make it loud; verify endpoints keep reporting it.
            log.error("hash chain failed verification at startup: height=%s %s", report.bad_height, report.reason)

    @property
    def chain(self) -> HashChain:
        return HashChain(self.state["chain"], self.state["genesis_hash"])

    def now(self) -> float:
        return float(self.clock())

    def save_state(self) -> None:
        with self._lock:
            self.store.save(self.state)

    def _event(self, typ: str, data: dict) -> None:
        self.state["events"].append({"ts": self.now(), "type": typ, "data": data})

    @contextmanager
    def _unit(self) -> Iterator[UnitOfWork]:
        """
        All-or-nothing mutation scope: either every touched record and
        appended list item is persisted, or the state is put back exactly
        as it was (including when the snapshot save itself fails).
        """
        with self._lock:
            uow = UnitOfWork(self.state)
            try:
                yield uow
                self.save_state()
            except BaseException:
                log.warning("rolling back unit of work (%s records touched)", uow.touched())
                uow.rollback()
                raise
            uow.commit()

    def _rumor_lock(self, rumor_id: str) -> threading.Lock:
        with self._locks_guard:
            lk = self._rumor_locks.get(rumor_id)
            if lk is None:
                lk = threading.Lock()
                self._rumor_locks[rumor_id] = lk
            return lk

    # ----------------------- identity ------------------

    def _lookup_hash(self, secret_key: str) -> str:
        return identity.lookup_hash(self._pepper, secret_key)

    def _profile_by_key(self, secret_key: str) -> Optional[Dict[str, Any]]:
        pid = self.state["key_index"].get(self._lookup_hash(secret_key))
        return self.state["profiles"].get(pid) if pid else None

    def get_profile(self, profile_id: str) -> Dict[str, Any]:
        prof = self.state["profiles"].get(profile_id)
        if prof is None:
            raise NotFound("PROFILE_NOT_FOUND", "profile not found")
        return prof

    def register(self, area: str) -> Tuple[str, Dict[str, Any]]:
        """Returns (secret_key, profile). The key is never retrievable again."""
        area = identity.validate_area(area)
        now = self.now()
        secret_key = identity.issue_secret_key()
        key_hash = self._lookup_hash(secret_key)
        pid = _new_id("usr")
        profile = {
            "id": pid,
            "secret_key_hash": key_hash,
            "area": area,
            "points": 0.0,
            "is_blocked": False,
            "blocked_at": None,
            "created_at": now,
            "key_issued_at": now,
            "key_expires_at": identity.key_expiry(now, self.key_ttl_days),
            "previous_key_hashes": [],
            "rumors_posted": [],
            "rumors_voted": 0,
            "correct_votes": 0,
            "incorrect_votes": 0,
        }
        with self._unit() as uow:
            uow.touch("profiles", pid)
            uow.touch("key_index", key_hash)
            self.state["profiles"][pid] = profile
            self.state["key_index"][key_hash] = pid
            self._event("register", {"profile_id": pid, "area": area})
        log.info("registered profile %s area=%s", pid, area)
        return secret_key, profile

    def authenticate(self, secret_key: str) -> Dict[str, Any]:
        key = identity.validate_secret_key(secret_key)
        profile = self._profile_by_key(key)
        if profile is None:
            raise Unauthorized("INVALID_CREDENTIALS", "no account matches this secret key")
        identity.require_unexpired(profile, self.now())
        return profile

    def login(self, secret_key: str) -> Dict[str, Any]:
        profile = self.authenticate(secret_key)
        key = identity.validate_secret_key(secret_key)
        tok = issue_token(profile["id"], ROLE_USER, self.token_ttl_sec, secret=self._secret)
        self.sessions.put(tok["sid"], profile["id"], key, tok["expires"])
        return {"token": tok["token"], "expires": tok["expires"], "profile": profile}

    def session_for(self, token: str) -> Session:
        payload = verify_token(token, secret=self._secret)
        if not payload or payload.get("role") != ROLE_USER:
            raise Unauthorized("AUTH_REQUIRED", "missing or invalid session token")
        sess = self.sessions.get(str(payload.get("sid")))
        if sess is None or sess.profile_id != payload.get("sub"):
            raise Unauthorized("AUTH_REQUIRED", "session has ended; log in again")
        return sess

    def logout(self, token: str) -> None:
        payload = verify_token(token, secret=self._secret)
        if payload:
            self.sessions.drop(str(payload.get("sid")))

    def recover(self, secret_key: str) -> Tuple[str, Dict[str, Any]]:
        """
        Re-key a profile. The old key proves ownership (expired keys are
        accepted, that is the point). Points, counters, block status and
        posted rumors stay on the profile; vote linkage moves to the new
        key through per-rumor nullifier aliases.
        """
        old_key = identity.validate_secret_key(secret_key)
        profile = self._profile_by_key(old_key)
        if profile is None:
            raise Unauthorized("INVALID_CREDENTIALS", "no account matches this secret key")

        pid = profile["id"]
        now = self.now()
        new_key = identity.issue_secret_key()
        old_hash = self._lookup_hash(old_key)
        new_hash = self._lookup_hash(new_key)

        with self._unit() as uow:
            uow.touch("profiles", pid)
            uow.touch("key_index", old_hash)
            uow.touch("key_index", new_hash)
            if self.state["key_index"].get(old_hash) != pid:
                raise Unauthorized("INVALID_CREDENTIALS", "no account matches this secret key")
            # Old-key sessions end before the scan; a vote still in flight fails its key check.
            dropped = self.sessions.drop_profile(pid)

            linked = 0
            for rid in list(self.state["rumors"].keys()):
                owned = self._resolve_nullifier(rid, identity.derive_nullifier(old_key, rid))
                if owned in self.state["votes"].get(rid, {}):
                    uow.touch("nullifier_aliases", rid)
                    aliases = self.state["nullifier_aliases"].setdefault(rid, {})
                    aliases[identity.derive_nullifier(new_key, rid)] = owned
                    linked += 1

            del self.state["key_index"][old_hash]
            self.state["key_index"][new_hash] = pid
            profile["previous_key_hashes"].append(old_hash)
            profile["secret_key_hash"] = new_hash
            profile["key_issued_at"] = now
            profile["key_expires_at"] = identity.key_expiry(now, self.key_ttl_days)
            profile["recovered_at"] = now
            self._event("recover", {"profile_id": pid, "linked_votes": linked})

        log.info("recovered profile %s (linked_votes=%s, sessions_dropped=%s)", pid, linked, dropped)
        return new_key, profile

    def admin_login(self, admin_key: str) -> Dict[str, Any]:
        if not isinstance(admin_key, str) or not hmac.compare_digest(admin_key, self._admin_key):
            raise Unauthorized("INVALID_CREDENTIALS", "invalid admin key")
        tok = issue_token("admin", ROLE_ADMIN, self.token_ttl_sec, secret=self._secret)
        return {"token": tok["token"], "expires": tok["expires"], "admin": {"id": "admin", "role": ROLE_ADMIN}}

    def require_admin(self, token: str) -> Dict[str, Any]:
        payload = verify_token(token, secret=self._secret)
        if not payload:
            raise Unauthorized("AUTH_REQUIRED", "missing or invalid admin token")
        if payload.get("role") != ROLE_ADMIN:
            raise Forbidden("ADMIN_REQUIRED", "admin role required")
        return payload

    def _require_not_blocked(self, profile: Dict[str, Any]) -> None:
        if profile.get("is_blocked"):
            raise Forbidden("USER_BLOCKED", "this account is blocked")

    # ----------------------- rumors ------------------

    def validate_content(self, content: str) -> ValidationResult:
        text = lifecycle.validate_content(content)
        return self.validator.validate(text)

    def post_rumor(
        self,
        profile_id: str,
        content: str,
        area_of_vote: str,
        voting_ends_at: float,
    ) -> Dict[str, Any]:
        profile = self.get_profile(profile_id)
        self._require_not_blocked(profile)
        identity.require_unexpired(profile, self.now())

        text = lifecycle.validate_content(content)
        area = identity.validate_area(area_of_vote)
        posted_at = self.now()
        lifecycle.validate_window(posted_at, float(voting_ends_at), self.duration_policy)

        verdict = self.validator.validate(text)
        if not (verdict.is_valid and verdict.is_rumor):
            raise PolicyRejected("INVALID_RUMOR", verdict.reason or "content is not a genuine rumor",
                                 validation=verdict.to_dict())

        rid = _new_id("rmr")
        rumor = lifecycle.new_rumor(
            rid, text, area, posted_at, float(voting_ends_at), self.sealer.seal(profile_id, rid)
        )
        with self._unit() as uow:
            uow.touch("rumors", rid)
            uow.touch("votes", rid)
            uow.touch("profiles", profile_id)
            self.state["rumors"][rid] = rumor
            self.state["votes"][rid] = {}
            profile["rumors_posted"].append(rid)
            self._event("rumor_posted", {"rumor_id": rid, "area": area})
        log.info("rumor %s posted area=%s ends_at=%s", rid, area, voting_ends_at)
        return rumor

    def _get_rumor_raw(self, rumor_id: str) -> Dict[str, Any]:
        rumor = self.state["rumors"].get(rumor_id)
        if rumor is None:
            raise NotFound("RUMOR_NOT_FOUND", "rumor not found")
        return rumor

    def get_rumor(self, rumor_id: str) -> Dict[str, Any]:
        """Reading a rumor also applies the pull-based deadline check."""
        self._get_rumor_raw(rumor_id)
        self.lock_if_due(rumor_id)
        return self._get_rumor_raw(rumor_id)

    def list_rumors(self, area: Optional[str] = None, status: Optional[str] = None) -> List[Dict[str, Any]]:
        if area is not None:
            identity.validate_area(area)
        if status is not None and status.lower() not in STATUS_FILTERS:
            raise ValidationFailed("INVALID_STATUS", f"status must be one of {', '.join(STATUS_FILTERS)}")
        out: List[Dict[str, Any]] = []
        for rid in list(self.state["rumors"].keys()):
            rumor = self.get_rumor(rid)
            if area is not None and rumor["area_of_vote"] != area:
                continue
            if status is not None and lifecycle.state_of(rumor) != status.upper():
                continue
            out.append(rumor)
        out.sort(key=lambda r: r["posted_at"], reverse=True)
        return out

    def stats_view(self, rumor_id: str) -> lifecycle.StatsView:
        return lifecycle.stats_view(self.get_rumor(rumor_id))

    # ----------------------- votes ------------------

    def _resolve_nullifier(self, rumor_id: str, nullifier: str) -> str:
        aliases = self.state["nullifier_aliases"].get(rumor_id) or {}
        return aliases.get(nullifier, nullifier)

    def _find_vote(self, rumor_id: str, secret_key: str) -> Optional[Dict[str, Any]]:
        nullifier = self._resolve_nullifier(rumor_id, identity.derive_nullifier(secret_key, rumor_id))
        return self.state["votes"].get(rumor_id, {}).get(nullifier)

    def cast_vote(self, session: Session, rumor_id: str, vote_type: str) -> Dict[str, Any]:
        vt = lifecycle.validate_vote_type(vote_type)
        profile = self.get_profile(session.profile_id)
        self._require_not_blocked(profile)
        identity.require_unexpired(profile, self.now())
        self._get_rumor_raw(rumor_id)

        with self._rumor_lock(rumor_id):
            rumor = self._get_rumor_raw(rumor_id)
            self._lock_if_due_locked(rumor)
            lifecycle.require_accepting_votes(rumor)

            if self._find_vote(rumor_id, session.secret_key) is not None:
                raise Conflict("ALREADY_VOTED", "a vote from this key already exists for this rumor")

            nullifier = identity.derive_nullifier(session.secret_key, rumor_id)
            within = identity.is_within_area(profile["area"], rumor["area_of_vote"])
            vote = {
                "rumor_id": rumor_id,
                "nullifier": nullifier,
                "vote_type": vt,
                "weight": compute_weight(float(profile["points"]), within, policy=self.weight_policy),
                "is_within_area": within,
                "timestamp": self.now(),
                "owner_seal": self.sealer.seal(profile["id"], rumor_id),
            }

            with self._unit() as uow:
                owner = self.state["profiles"][profile["id"]]
                if owner["secret_key_hash"] != self._lookup_hash(session.secret_key):
                    raise Unauthorized("AUTH_REQUIRED", "this secret key was replaced; log in again")
                uow.touch("votes", rumor_id)
                uow.touch("rumors", rumor_id)
                uow.touch("profiles", owner["id"])
                self.state["votes"].setdefault(rumor_id, {})[nullifier] = vote
                lifecycle.add_vote_to_tallies(rumor["tallies"], vote)
                owner["rumors_voted"] = int(owner.get("rumors_voted", 0)) + 1

            log.info("vote accepted rumor=%s nullifier=%s... weight=%.2f", rumor_id, nullifier[:10], vote["weight"])

            # Early lock is evaluated right after the tally moves.
            self._lock_if_due_locked(rumor)
        return vote

    def vote_status(self, session: Session, rumor_id: str) -> Dict[str, Any]:
        self._get_rumor_raw(rumor_id)
        vote = self._find_vote(rumor_id, session.secret_key)
        if vote is None:
            return {"has_voted": False, "vote_type": None}
        return {"has_voted": True, "vote_type": vote["vote_type"]}

    def my_votes(self, session: Session) -> List[Dict[str, Any]]:
        out = []
        for rid in list(self.state["rumors"].keys()):
            vote = self._find_vote(rid, session.secret_key)
            if vote is not None:
                out.append(vote)
        out.sort(key=lambda v: v["timestamp"], reverse=True)
        return out

    # ----------------------- lifecycle ------------------

    def _lock_if_due_locked(self, rumor: Dict[str, Any]) -> bool:
        """Caller holds the rumor lock."""
        reason = lifecycle.lock_reason_due(rumor, self.now(), self.early_lock)
        if reason is None:
            return False
        with self._unit() as uow:
            uow.touch("rumors", rumor["id"])
            lifecycle.lock(rumor, self.now(), reason)
            self._event("rumor_locked", {"rumor_id": rumor["id"], "reason": reason})
        log.info("rumor %s locked (%s)", rumor["id"], reason)
        return True

    def lock_if_due(self, rumor_id: str) -> bool:
        rumor = self._get_rumor_raw(rumor_id)
        if lifecycle.state_of(rumor) != lifecycle.STATE_ACTIVE:
            return False
        with self._rumor_lock(rumor_id):
            return self._lock_if_due_locked(self._get_rumor_raw(rumor_id))

    def finalize(self, rumor_id: str) -> Decision:
        """
        LOCKED -> FINAL, exactly once. A second call (retry, or a racing
        sweeper) sees is_final and returns the sealed decision untouched.
        """
        with self._rumor_lock(rumor_id):
            rumor = self._get_rumor_raw(rumor_id)
            self._lock_if_due_locked(rumor)
            votes = list(self.state["votes"].get(rumor_id, {}).values())
            decision = compute_finality(rumor, votes, self.finality_policy)
            if decision.already_final:
                return decision

            with self._chain_lock:
                with self._unit() as uow:
                    uow.touch("rumors", rumor_id)
                    self._apply_deltas(uow, rumor, votes, decision)

                    snapshot = voting_snapshot(decision.final_stats, votes)
                    chain = self.chain
                    prev = chain.head_hash()
                    block = chain.append_block(rumor, decision.decision, snapshot, prev, now=self.now())
                    lifecycle.mark_final(
                        rumor,
                        decision=decision.decision,
                        final_stats=decision.final_stats,
                        previous_hash=prev,
                        current_hash=block["current_hash"],
                        now=self.now(),
                    )
                    self._event("rumor_final", {"rumor_id": rumor_id, "decision": decision.decision,
                                                "height": block["height"]})

        log.info(
            "rumor %s finalized %s (fact=%.2f lie=%.2f voters=%s)",
            rumor_id, decision.decision, decision.fact_weight, decision.lie_weight, len(votes),
        )
        return decision

    def _apply_deltas(
        self,
        uow: UnitOfWork,
        rumor: Dict[str, Any],
        votes: List[Dict[str, Any]],
        decision: Decision,
    ) -> None:
        rid = rumor["id"]
        now = self.now()
        for vote in votes:
            pid = self.sealer.unseal(vote["owner_seal"], rid)
            if pid not in self.state["profiles"]:
                continue
            uow.touch("profiles", pid)
            delta = decision.per_voter_delta[vote["nullifier"]]
            self.reputation.apply_delta(pid, delta, "vote_correct" if delta >= 0 else "vote_incorrect",
                                        rumor_id=rid, now=now)
            prof = self.state["profiles"][pid]
            if vote["vote_type"] == decision.decision:
                prof["correct_votes"] = int(prof.get("correct_votes", 0)) + 1
            else:
                prof["incorrect_votes"] = int(prof.get("incorrect_votes", 0)) + 1

        poster = self.sealer.unseal(rumor["poster_seal"], rid)
        if poster in self.state["profiles"]:
            uow.touch("profiles", poster)
            reason = "rumor_fact" if decision.decision == lifecycle.VOTE_FACT else "rumor_lie"
            self.reputation.apply_delta(poster, decision.poster_delta, reason, rumor_id=rid, now=now)

    def tick(self) -> Dict[str, List[str]]:
        """
        One sweep: lock what is due, then finalize everything locked.
        A failure on one rumor is logged and does not stop the others.
        """
        locked: List[str] = []
        finalized: List[str] = []
        for rid in sorted(self.state["rumors"].keys()):
            try:
                if self.lock_if_due(rid):
                    locked.append(rid)
                rumor = self._get_rumor_raw(rid)
                if lifecycle.state_of(rumor) == lifecycle.STATE_LOCKED:
                    self.finalize(rid)
                    finalized.append(rid)
            except Exception:
                log.exception("sweep failed for rumor %s", rid)
        return {"locked": locked, "finalized": finalized}

    def start_loop(self) -> None:
        with self._lock:
            if self._loop_thread and self._loop_thread.is_alive():
                return
            self._stop_event.clear()
            t = threading.Thread(target=self._loop_main, name="veranode-sweep", daemon=True)
            self._loop_thread = t
            t.start()

    def stop_loop(self) -> None:
        self._stop_event.set()
        t = self._loop_thread
        if t and t.is_alive():
            t.join(timeout=2.0)

    def _loop_main(self) -> None:
        interval = max(0.2, float(self.cfg["sweep"].get("interval_sec", 30.0)))
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                log.exception("sweep loop tick failed")
            self._stop_event.wait(interval)

    # ----------------------- ledger ------------------

    def verify_chain(self) -> ChainReport:
        report = self.chain.verify()
        if not report.ok:
            log.error("hash chain verification failed: height=%s %s", report.bad_height, report.reason)
        return report

    def require_chain_intact(self) -> ChainReport:
        return self.chain.require_intact()

    # ----------------------- user views ------------------

    def user_stats(self, profile_id: str) -> Dict[str, Any]:
        prof = self.get_profile(profile_id)
        return {
            "rumors_posted": len(prof.get("rumors_posted", [])),
            "rumors_voted": int(prof.get("rumors_voted", 0)),
            "correct_votes": int(prof.get("correct_votes", 0)),
            "incorrect_votes": int(prof.get("incorrect_votes", 0)),
            "points": self.reputation.get(profile_id),
            "account_status": self.reputation.account_status(prof),
        }

    def user_rumors(self, profile_id: str) -> List[Dict[str, Any]]:
        prof = self.get_profile(profile_id)
        return [self.get_rumor(rid) for rid in prof.get("rumors_posted", []) if rid in self.state["rumors"]]

    # ----------------------- admin ------------------

    def blocked_profiles(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [p for p in self.state["profiles"].values() if p.get("is_blocked")]

    def unblock(self, *, secret_key: Optional[str] = None, profile_id: Optional[str] = None) -> Dict[str, Any]:
        if secret_key:
            profile = self._profile_by_key(identity.validate_secret_key(secret_key))
            if profile is None:
                raise NotFound("PROFILE_NOT_FOUND", "no account matches this secret key")
        elif profile_id:
            profile = self.get_profile(profile_id)
        else:
            raise ValidationFailed("MISSING_TARGET", "secretKey or profileId is required")

        if not profile.get("is_blocked"):
            return profile
        with self._unit() as uow:
            uow.touch("profiles", profile["id"])
            profile["is_blocked"] = False
            profile["blocked_at"] = None
            self._event("unblock", {"profile_id": profile["id"]})
        log.info("profile %s unblocked by admin", profile["id"])
        return profile

    def dashboard_stats(self) -> Dict[str, Any]:
        with self._lock:
            profiles = list(self.state["profiles"].values())
            rumors = list(self.state["rumors"].items())
            vote_counts = {rid: len(v) for rid, v in self.state["votes"].items()}
            total_blocks = len(self.state["chain"])
        blocked = sum(1 for p in profiles if p.get("is_blocked"))
        by_state = {s: 0 for s in lifecycle.STATE_ORDER}
        active_votes = 0
        for rid, rumor in rumors:
            st = lifecycle.state_of(rumor)
            by_state[st] += 1
            if st != lifecycle.STATE_FINAL:
                active_votes += vote_counts.get(rid, 0)
        return {
            "users": {"total": len(profiles), "active": len(profiles) - blocked, "blocked": blocked},
            "rumors": {
                "total": len(rumors),
                "active": by_state[lifecycle.STATE_ACTIVE],
                "locked": by_state[lifecycle.STATE_LOCKED],
                "finalized": by_state[lifecycle.STATE_FINAL],
            },
            "votes": {"active": active_votes},
            "blockchain": {"total_blocks": total_blocks},
        }

    def status(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "schema_version": self.state["schema_version"],
            "chain_height": len(self.state["chain"]),
            "chain_head": self.chain.head_hash(),
            "sweep_running": bool(self._loop_thread and self._loop_thread.is_alive()),
            "sessions": len(self.sessions),
        }


# ------------------------------------------------------------------------------
# Process-wide engine
# ------------------------------------------------------------------------------

_engine: Optional[VeraEngine] = None
_engine_guard = threading.Lock()


def build_engine(repo_root: Optional[str] = None) -> VeraEngine:
    root = repo_root or os.getcwd()
    cfg = load_config(root)
    data_dir = cfg["persistence"].get("data_dir", "data")
    if not os.path.isabs(data_dir):
        data_dir = str(Path(root) / data_dir)
    return VeraEngine(data_dir, cfg)


def get_engine() -> VeraEngine:
    global _engine
    with _engine_guard:
        if _engine is None:
            _engine = build_engine()
        return _engine


def set_engine(engine: Optional[VeraEngine]) -> None:
    """Swap the process engine (tests, embedding)."""
    global _engine
    with _engine_guard:
        if _engine is not None and _engine is not engine:
            _engine.stop_loop()
        _engine = engine
