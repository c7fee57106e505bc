"""
Flux Digest API Server

FastAPI application providing endpoints for:
- Digest generation, storage and push
- Scheduled digest tasks
- Miniflux and AI provider settings
- Streamed chat through the configured provider
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import config, state
from .database import Database
from .rate_limit import setup_rate_limiting
from .routes import (
    ai_router,
    digests_router,
    miniflux_router,
    misc_router,
    schedule_router,
)
from .services import (
    DigestScheduler,
    DigestService,
    DigestTaskRunner,
    JobTracker,
    PushService,
)
from .vault import CredentialVault

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    # Startup - skip if already initialized (e.g., by tests)
    if state.db is None:
        state.db = Database(config.DB_PATH)
        state.vault = CredentialVault(config.ENCRYPTION_SECRET, config.ENCRYPTION_SALT)
        state.push_service = PushService()
        state.digest_service = DigestService(state.db, state.vault)
        state.jobs = JobTracker()

        if config.ENABLE_SCHEDULER:
            state.scheduler = DigestScheduler(
                state.db,
                DigestTaskRunner(state.digest_service, state.push_service),
            )
            await state.scheduler.initialize()
        else:
            logger.info("Scheduler disabled (ENABLE_SCHEDULER=false)")

        logger.info(f"Flux Digest {__version__} started (db: {config.DB_PATH})")

    yield

    # Shutdown
    if state.scheduler:
        try:
            await state.scheduler.stop_all()
        except Exception as e:
            logger.warning(f"Error stopping scheduler: {e}")


app = FastAPI(
    title="Flux Digest API",
    version=__version__,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in config.CORS_ORIGIN.split(",") if o.strip()],
    allow_methods=["*"],
    allow_headers=["*"],
)
setup_rate_limiting(app)

# Include routers; the schedule and miniflux prefixes sit under /api/digests
# and must match before /api/digests/{digest_id}
app.include_router(misc_router)
app.include_router(schedule_router)
app.include_router(miniflux_router)
app.include_router(digests_router)
app.include_router(ai_router)
