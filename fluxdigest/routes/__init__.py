"""
API route modules.
"""

from .ai import router as ai_router
from .digests import router as digests_router
from .miniflux import router as miniflux_router
from .misc import router as misc_router
from .schedule import router as schedule_router

__all__ = [
    "ai_router",
    "digests_router",
    "miniflux_router",
    "misc_router",
    "schedule_router",
]
