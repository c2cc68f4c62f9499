# veranode/api/auth.py
from __future__ import annotations

"""
Auth API.

Routes
------
- POST /auth/register {area}        -> {secretKey, token, profile}
- POST /auth/login {secretKey}      -> {token, profile}   (KEY_EXPIRED when expired)
- POST /auth/recover {secretKey}    -> {secretKey, profile}  new key, same profile
- GET  /auth/verify                 -> {profile}
- POST /auth/logout

The secret key appears in a response body exactly twice in a profile's
life cycle: on register and on recover.
"""

import logging

from fastapi import APIRouter, Depends

from ..security.current_user import require_bearer_token, require_session
from ..security.sessions import Session
from ..vera_engine import VeraEngine, get_engine
from .models import RegisterRequest, SecretKeyRequest, to_profile

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)


@router.post("/register")
def register(payload: RegisterRequest, engine: VeraEngine = Depends(get_engine)):
    secret_key, profile = engine.register(payload.area)
    session = engine.login(secret_key)
    return {
        "ok": True,
        "secretKey": secret_key,
        "token": session["token"],
        "profile": to_profile(profile, now=engine.now()),
    }


@router.post("/login")
def login(payload: SecretKeyRequest, engine: VeraEngine = Depends(get_engine)):
    session = engine.login(payload.secret_key)
    return {
        "ok": True,
        "token": session["token"],
        "expires": session["expires"],
        "profile": to_profile(session["profile"], now=engine.now()),
    }


@router.post("/recover")
def recover(payload: SecretKeyRequest, engine: VeraEngine = Depends(get_engine)):
    new_key, profile = engine.recover(payload.secret_key)
    return {
        "ok": True,
        "secretKey": new_key,
        "profile": to_profile(profile, now=engine.now()),
    }


@router.get("/verify")
def verify(session: Session = Depends(require_session), engine: VeraEngine = Depends(get_engine)):
    profile = engine.get_profile(session.profile_id)
    return {"ok": True, "profile": to_profile(profile, now=engine.now())}


@router.post("/logout")
def logout(token: str = Depends(require_bearer_token), engine: VeraEngine = Depends(get_engine)):
    engine.logout(token)
    return {"ok": True}
