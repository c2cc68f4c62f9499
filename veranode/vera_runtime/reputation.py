from __future__ import annotations
from typing import Any, Dict, Optional
import time

STATUS_ACTIVE = "ACTIVE"
STATUS_WARNING = "WARNING"
STATUS_BLOCKED = "BLOCKED"


class ReputationRuntime:
    """
    Point bookkeeping for profiles.

    - Points live on the profile record: state["profiles"][id]["points"].
    - Points are unbounded and signed; only finalization changes them.
    - Every change is logged in state["rep_events"] for auditability.
    - A profile whose points fall to or below `block_threshold` is blocked.
      Only an admin unblock clears that.
    """

    def __init__(
        self,
        state: Dict[str, Any],
        *,
        block_threshold: float = -50.0,
        warning_threshold: float = 0.0,
    ) -> None:
        self.state = state
        self.state.setdefault("profiles", {})
        self.state.setdefault("rep_events", [])
        self.block_threshold = float(block_threshold)
        self.warning_threshold = float(warning_threshold)

    def get(self, profile_id: str) -> float:
        prof = self.state["profiles"].get(profile_id) or {}
        return float(prof.get("points", 0.0))

    def apply_delta(
        self,
        profile_id: str,
        delta: float,
        reason: str,
        *,
        rumor_id: Optional[str] = None,
        now: Optional[float] = None,
    ) -> float:
        """
        Apply a signed delta and record an event. Returns the new score.
        """
        if not profile_id:
            raise ValueError("profile_id is required")
        prof = self.state["profiles"].get(profile_id)
        if prof is None:
            raise KeyError(f"Unknown profile_id: {profile_id}")

        new_score = float(prof.get("points", 0.0)) + float(delta)
        prof["points"] = new_score

        if new_score <= self.block_threshold and not prof.get("is_blocked"):
            prof["is_blocked"] = True
            prof["blocked_at"] = float(now if now is not None else time.time())

        self.state["rep_events"].append(
            {
                "profile_id": profile_id,
                "delta": float(delta),
                "result": new_score,
                "reason": reason,
                "rumor_id": rumor_id,
                "ts": float(now if now is not None else time.time()),
            }
        )
        return new_score

    def account_status(self, profile: Dict[str, Any]) -> str:
        if profile.get("is_blocked"):
            return STATUS_BLOCKED
        if float(profile.get("points", 0.0)) < self.warning_threshold:
            return STATUS_WARNING
        return STATUS_ACTIVE
