"""
Miscellaneous routes: service info and health check.
"""

from fastapi import APIRouter

from .. import __version__
from ..config import config, state

router = APIRouter(tags=["misc"])


@router.get("/")
async def root() -> dict:
    return {"name": "Flux Digest API", "version": __version__}


@router.get("/health")
async def health_check() -> dict:
    """API health check."""
    return {
        "status": "ok",
        "version": __version__,
        "auth_enabled": bool(config.AUTH_API_KEY),
        "scheduler": state.scheduler.status() if state.scheduler else None,
    }
