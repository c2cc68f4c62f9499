from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from ..vera_engine import VeraEngine, get_engine

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    return {"ok": True, "ts": time.time()}


@router.get("/health/status")
def status(engine: VeraEngine = Depends(get_engine)):
    return engine.status()
