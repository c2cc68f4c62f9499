from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..security.current_user import require_session
from ..security.sessions import Session
from ..vera_engine import VeraEngine, get_engine
from .models import (
    CreateRumorRequest,
    ValidateRequest,
    VoteRequest,
    to_epoch,
    to_rumor,
    to_rumor_list,
    to_stats,
    to_vote,
)

router = APIRouter(prefix="/rumors", tags=["rumors"])


@router.get("")
def list_rumors(
    area: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="active | locked | final"),
    engine: VeraEngine = Depends(get_engine),
):
    return to_rumor_list(engine.list_rumors(area=area, status=status))


@router.post("/validate")
def validate_rumor(payload: ValidateRequest, engine: VeraEngine = Depends(get_engine)):
    """Dry run of the content check; nothing is stored."""
    return engine.validate_content(payload.content).to_dict()


@router.post("")
def create_rumor(
    payload: CreateRumorRequest,
    session: Session = Depends(require_session),
    engine: VeraEngine = Depends(get_engine),
):
    rumor = engine.post_rumor(
        session.profile_id,
        payload.content,
        payload.area_of_vote,
        to_epoch(payload.voting_ends_at),
    )
    return {"ok": True, "rumor": to_rumor(rumor)}


@router.get("/{rumor_id}")
def get_rumor(rumor_id: str, engine: VeraEngine = Depends(get_engine)):
    return to_rumor(engine.get_rumor(rumor_id))


@router.get("/{rumor_id}/stats")
def get_stats(rumor_id: str, engine: VeraEngine = Depends(get_engine)):
    return to_stats(engine.stats_view(rumor_id))


@router.post("/{rumor_id}/vote")
def vote(
    rumor_id: str,
    payload: VoteRequest,
    session: Session = Depends(require_session),
    engine: VeraEngine = Depends(get_engine),
):
    v = engine.cast_vote(session, rumor_id, payload.vote_type)
    return {"ok": True, "vote": to_vote(v)}


@router.get("/{rumor_id}/vote-status")
def vote_status(
    rumor_id: str,
    session: Session = Depends(require_session),
    engine: VeraEngine = Depends(get_engine),
):
    st = engine.vote_status(session, rumor_id)
    out = {"hasVoted": st["has_voted"]}
    if st["has_voted"]:
        out["voteType"] = st["vote_type"]
    return out
