# veranode/__main__.py
"""
Entry point for running VeraNode as a module:
    python -m veranode [--host 0.0.0.0] [--port 3008] [--config-root .] [--sweep]

Env toggles:
  VERANODE_SECRET=...      -> token signing, key lookup pepper, identity seals
  VERANODE_ADMIN_KEY=...   -> admin dashboard key
  VERANODE_ENV=prod        -> refuse to start without the two secrets above
"""

from __future__ import annotations

import argparse
import os

import uvicorn

from .config import get_bind_host, get_bind_port, get_log_level, load_config


def parse_args(argv=None):
    p = argparse.ArgumentParser(prog="veranode", description="Run the VeraNode rumor verification API")
    p.add_argument("--config-root", default=os.getcwd(), help="Directory holding veranode_config.yaml")
    p.add_argument("--host", default=None, help="Bind address (default: server.host)")
    p.add_argument("--port", type=int, default=None, help="Port (default: server.port)")
    p.add_argument("--sweep", action="store_true", help="Run the lock/finalize sweep loop in-process")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    os.chdir(args.config_root)
    if args.sweep:
        os.environ["VERANODE_AUTO_SWEEP"] = "1"
    cfg = load_config(args.config_root)

    from .vera_api import create_app
    from .vera_engine import build_engine

    app = create_app(build_engine(args.config_root))
    uvicorn.run(
        app,
        host=args.host or get_bind_host(cfg),
        port=args.port or get_bind_port(cfg),
        log_level=get_log_level(cfg).lower(),
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
