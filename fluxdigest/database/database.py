"""
Database facade - provides unified access to all repositories.
"""

from datetime import datetime
from pathlib import Path

from .connection import DatabaseConnection
from .digest_repository import DigestRepository
from .task_repository import TaskRepository
from .config_repository import ConfigRepository
from .models import DBDigest, DBScheduledTask


class Database:
    """
    Unified database access facade.

    Repositories are reachable as attributes (db.digests, db.tasks,
    db.configs); the most used operations are delegated below.
    """

    def __init__(self, db_path: Path):
        self._connection = DatabaseConnection(db_path)

        # Initialize repositories
        self.digests = DigestRepository(self._connection)
        self.tasks = TaskRepository(self._connection)
        self.configs = ConfigRepository(self._connection)

    # ─────────────────────────────────────────────────────────────
    # Digest operations (delegated to DigestRepository)
    # ─────────────────────────────────────────────────────────────

    def add_digest(
        self,
        title: str,
        content: str,
        scope: str = "all",
        scope_id: int | None = None,
        scope_name: str = "",
        article_count: int = 0,
        hours: int = 24,
        target_lang: str = "Simplified Chinese",
        generated_at: datetime | None = None,
    ) -> int:
        return self.digests.add(
            title, content, scope, scope_id, scope_name,
            article_count, hours, target_lang, generated_at
        )

    def get_digest(self, digest_id: int) -> DBDigest | None:
        return self.digests.get(digest_id)

    def get_digests(
        self,
        scope: str | None = None,
        scope_id: int | None = None,
        is_read: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[DBDigest]:
        return self.digests.get_many(scope, scope_id, is_read, limit, offset)

    def count_digests(
        self,
        scope: str | None = None,
        scope_id: int | None = None,
        is_read: bool | None = None,
    ) -> int:
        return self.digests.count(scope, scope_id, is_read)

    def update_digest(
        self,
        digest_id: int,
        title: str | None = None,
        content: str | None = None,
        is_read: bool | None = None,
    ) -> bool:
        return self.digests.update(digest_id, title, content, is_read)

    def delete_digest(self, digest_id: int) -> bool:
        return self.digests.delete(digest_id)

    # ─────────────────────────────────────────────────────────────
    # Scheduled task operations (delegated to TaskRepository)
    # ─────────────────────────────────────────────────────────────

    def get_task(self, task_id: int) -> DBScheduledTask | None:
        return self.tasks.get(task_id)

    def get_tasks(self, active_only: bool = False) -> list[DBScheduledTask]:
        return self.tasks.get_all(active_only)
