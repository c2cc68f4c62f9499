from __future__ import annotations

from fastapi import APIRouter, Depends

from ..security.current_user import require_session
from ..security.sessions import Session
from ..vera_engine import VeraEngine, get_engine
from .models import camel, to_rumor_list, to_vote

router = APIRouter(tags=["users"])


@router.get("/votes/my-votes")
def my_votes(session: Session = Depends(require_session), engine: VeraEngine = Depends(get_engine)):
    return [to_vote(v) for v in engine.my_votes(session)]


@router.get("/user/stats")
def user_stats(session: Session = Depends(require_session), engine: VeraEngine = Depends(get_engine)):
    return camel(engine.user_stats(session.profile_id))


@router.get("/user/rumors")
def user_rumors(session: Session = Depends(require_session), engine: VeraEngine = Depends(get_engine)):
    return to_rumor_list(engine.user_rumors(session.profile_id))
