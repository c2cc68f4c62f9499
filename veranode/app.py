"""
veranode/app.py
---------------
Thin entrypoint for running the VeraNode FastAPI app via:

    uvicorn veranode.app:app

All route wiring lives in veranode.vera_api.
"""

from .vera_api import app as app  # re-export for uvicorn
