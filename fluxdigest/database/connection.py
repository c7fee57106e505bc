"""
Database connection management and schema initialization.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


class DatabaseConnection:
    """Manages database connection and schema."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @contextmanager
    def conn(self) -> Iterator[sqlite3.Connection]:
        """Get database connection with row factory."""
        connection = sqlite3.connect(self.db_path, timeout=30)
        connection.row_factory = sqlite3.Row
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _init_schema(self):
        """Initialize database schema."""
        with self.conn() as connection:
            connection.executescript("""
                CREATE TABLE IF NOT EXISTS ai_config (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    provider TEXT NOT NULL UNIQUE,
                    api_url TEXT NOT NULL,
                    api_key_encrypted TEXT,
                    model TEXT,
                    extra_config TEXT,
                    is_active INTEGER DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS miniflux_config (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT UNIQUE DEFAULT 'default',
                    api_url TEXT NOT NULL,
                    api_key_encrypted TEXT,
                    is_active INTEGER DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS digests (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    scope TEXT DEFAULT 'all',
                    scope_id INTEGER,
                    scope_name TEXT,
                    article_count INTEGER DEFAULT 0,
                    hours INTEGER DEFAULT 24,
                    target_lang TEXT DEFAULT 'Simplified Chinese',
                    is_read INTEGER DEFAULT 0,
                    generated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                -- scope/scope_id pick the feeds, hours is the article window,
                -- cron_expression + timezone decide when the task fires
                CREATE TABLE IF NOT EXISTS scheduled_tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    scope TEXT NOT NULL,
                    scope_id INTEGER,
                    scope_name TEXT,
                    hours INTEGER DEFAULT 24,
                    target_lang TEXT DEFAULT 'Simplified Chinese',
                    unread_only INTEGER DEFAULT 1,
                    push_enabled INTEGER DEFAULT 0,
                    push_config TEXT,
                    cron_expression TEXT NOT NULL,
                    timezone TEXT DEFAULT 'Asia/Shanghai',
                    is_active INTEGER DEFAULT 1,
                    last_run_at TIMESTAMP,
                    next_run_at TIMESTAMP,
                    last_error TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_ai_config_provider ON ai_config(provider);
                CREATE INDEX IF NOT EXISTS idx_digests_generated ON digests(generated_at DESC);
                CREATE INDEX IF NOT EXISTS idx_digests_scope ON digests(scope, scope_id);
                CREATE INDEX IF NOT EXISTS idx_digests_is_read ON digests(is_read);
                CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_is_active ON scheduled_tasks(is_active);
                CREATE INDEX IF NOT EXISTS idx_scheduled_tasks_next_run ON scheduled_tasks(next_run_at);
            """)
