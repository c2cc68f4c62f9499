"""
veranode/api/admin.py
---------------------
Admin API.

Routes
------
- POST /admin/login {adminKey}                         -> {token, admin}
- GET  /admin/dashboard/stats                          -> users / rumors / votes / blockchain counts
- GET  /admin/dashboard/blocked-users                  -> {blockedProfiles: [...]}
- POST /admin/dashboard/unblock-user {secretKey | profileId}
- GET  /admin/chain/verify                             -> chain report (500 CHAIN_TAMPERED on mismatch)
"""

import logging

from fastapi import APIRouter, Depends

from ..security.current_user import require_admin
from ..vera_engine import VeraEngine, get_engine
from .models import AdminLoginRequest, UnblockRequest, camel, to_blocked, to_profile

router = APIRouter(prefix="/admin", tags=["admin"])

logger = logging.getLogger(__name__)


@router.post("/login")
def admin_login(payload: AdminLoginRequest, engine: VeraEngine = Depends(get_engine)):
    out = engine.admin_login(payload.admin_key)
    logger.info("admin login")
    return {"ok": True, "token": out["token"], "expires": out["expires"], "admin": out["admin"]}


@router.get("/dashboard/stats", dependencies=[Depends(require_admin)])
def dashboard_stats(engine: VeraEngine = Depends(get_engine)):
    return camel(engine.dashboard_stats())


@router.get("/dashboard/blocked-users", dependencies=[Depends(require_admin)])
def blocked_users(engine: VeraEngine = Depends(get_engine)):
    return {"blockedProfiles": [to_blocked(p) for p in engine.blocked_profiles()]}


@router.post("/dashboard/unblock-user", dependencies=[Depends(require_admin)])
def unblock_user(payload: UnblockRequest, engine: VeraEngine = Depends(get_engine)):
    profile = engine.unblock(secret_key=payload.secret_key, profile_id=payload.profile_id)
    return {"ok": True, "profile": to_profile(profile, now=engine.now())}


@router.get("/chain/verify", dependencies=[Depends(require_admin)])
def verify_chain(engine: VeraEngine = Depends(get_engine)):
    report = engine.require_chain_intact()
    return camel(report.to_dict())
