from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import admin, auth, health, rumors, users
from .config import get_cors_origins, get_log_level, load_config
from .errors import VeraError
from .vera_engine import VeraEngine, get_engine, set_engine

log = logging.getLogger(__name__)


def create_app(engine: Optional[VeraEngine] = None) -> FastAPI:
    cfg = engine.cfg if engine is not None else load_config(os.getcwd())
    logging.basicConfig(
        level=get_log_level(cfg),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    if engine is not None:
        set_engine(engine)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        eng = get_engine()
        yield
        eng.stop_loop()

    app = FastAPI(title="VeraNode API", version=__version__, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_cors_origins(cfg) or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(VeraError)
    async def _vera_error(request: Request, exc: VeraError):
        if exc.status >= 500:
            log.error("%s %s -> %s %s", request.method, request.url.path, exc.code, exc.message)
        return JSONResponse(status_code=exc.status, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError):
        body = {"ok": False, "error": "VALIDATION_FAILED", "message": "request body failed validation",
                "details": {"errors": exc.errors()}}
        return JSONResponse(status_code=400, content=jsonable_encoder(body))

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(rumors.router)
    app.include_router(users.router)
    app.include_router(admin.router)
    return app


app = create_app()
