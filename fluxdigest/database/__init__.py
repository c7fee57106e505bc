"""
Database module - SQLite storage for digests, scheduled tasks and configs.

Uses repository pattern for better separation of concerns.
"""

from .connection import DatabaseConnection
from .models import DBDigest, DBScheduledTask, DBAIConfig, DBMinifluxConfig
from .digest_repository import DigestRepository
from .task_repository import TaskRepository
from .config_repository import ConfigRepository
from .database import Database

__all__ = [
    "Database",
    "DatabaseConnection",
    "DBDigest",
    "DBScheduledTask",
    "DBAIConfig",
    "DBMinifluxConfig",
    "DigestRepository",
    "TaskRepository",
    "ConfigRepository",
]
