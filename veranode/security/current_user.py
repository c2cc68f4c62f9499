from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import Depends, Header

from ..errors import Unauthorized
from ..vera_engine import VeraEngine, get_engine
from .sessions import Session


def bearer_token_optional(authorization: Optional[str] = Header(default=None)) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def require_bearer_token(token: Optional[str] = Depends(bearer_token_optional)) -> str:
    if not token:
        raise Unauthorized("AUTH_REQUIRED", "Authorization: Bearer <token> required")
    return token


def require_session(
    token: str = Depends(require_bearer_token),
    engine: VeraEngine = Depends(get_engine),
) -> Session:
    return engine.session_for(token)


def require_admin(
    token: str = Depends(require_bearer_token),
    engine: VeraEngine = Depends(get_engine),
) -> Dict[str, Any]:
    return engine.require_admin(token)
