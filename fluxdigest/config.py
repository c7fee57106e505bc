"""
Configuration and application state management.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from fastapi import HTTPException

if TYPE_CHECKING:
    from .database import Database
    from .vault import CredentialVault
    from .services.digest_service import DigestService
    from .services.jobs import JobTracker
    from .services.push_service import PushService
    from .services.scheduler import DigestScheduler

# Load environment variables
load_dotenv()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


class Config:
    """Application configuration from environment."""
    DB_PATH: Path = Path(os.getenv("DB_PATH", "./data/digests.db"))
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3001"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Shared API key for the X-API-Key header; empty disables auth (local dev)
    AUTH_API_KEY: str = os.getenv("AUTH_API_KEY", "")
    RATE_LIMIT_PER_MINUTE: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "120"))
    CORS_ORIGIN: str = os.getenv("CORS_ORIGIN", "*")

    # Credential encryption at rest
    ENCRYPTION_SECRET: str = os.getenv("ENCRYPTION_SECRET", "fluxdigest-default-encryption-key")
    ENCRYPTION_SALT: str = os.getenv("ENCRYPTION_SALT", "fluxdigest-salt")

    # Sent as HTTP-Referer to OpenRouter
    APP_URL: str = os.getenv("APP_URL", "http://localhost:3000")

    # Scheduled tasks without an explicit timezone use this one
    DEFAULT_TIMEZONE: str = os.getenv("DEFAULT_TIMEZONE", "Asia/Shanghai")

    # Hard upper bound on a single digest LLM call
    AI_TIMEOUT_SECONDS: float = float(os.getenv("AI_TIMEOUT_SECONDS", "600"))

    # Set to false to keep the cron loops off (e.g. for one-off API workers)
    ENABLE_SCHEDULER: bool = _parse_bool(os.getenv("ENABLE_SCHEDULER"), default=True)


config = Config()


class AppState:
    """Shared application state."""
    db: "Database | None" = None
    vault: "CredentialVault | None" = None
    digest_service: "DigestService | None" = None
    scheduler: "DigestScheduler | None" = None
    jobs: "JobTracker | None" = None
    push_service: "PushService | None" = None


state = AppState()


def get_db() -> "Database":
    """Dependency to get database instance."""
    if not state.db:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return state.db


def get_vault() -> "CredentialVault":
    """Dependency to get the credential vault."""
    if not state.vault:
        raise HTTPException(status_code=500, detail="Credential vault not initialized")
    return state.vault


def get_digest_service() -> "DigestService":
    """Dependency to get the digest service."""
    if not state.digest_service:
        raise HTTPException(status_code=500, detail="Digest service not initialized")
    return state.digest_service


def get_scheduler() -> "DigestScheduler":
    """Dependency to get the digest scheduler."""
    if not state.scheduler:
        raise HTTPException(status_code=503, detail="Scheduler not running")
    return state.scheduler


def get_jobs() -> "JobTracker":
    """Dependency to get the generation job tracker."""
    if not state.jobs:
        raise HTTPException(status_code=500, detail="Job tracker not initialized")
    return state.jobs


def get_push_service() -> "PushService":
    """Dependency to get the push service."""
    if not state.push_service:
        raise HTTPException(status_code=500, detail="Push service not initialized")
    return state.push_service
