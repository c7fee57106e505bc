"""
Scheduled task repository - persisted cron digest tasks.
"""

import json
from datetime import datetime

from .connection import DatabaseConnection
from .converters import row_to_task, format_timestamp
from .models import DBScheduledTask

# Request field -> column, for the plain-value columns of update()
_UPDATABLE_COLUMNS = {
    "name": "name",
    "scope": "scope",
    "scope_id": "scope_id",
    "scope_name": "scope_name",
    "hours": "hours",
    "target_lang": "target_lang",
    "cron_expression": "cron_expression",
    "timezone": "timezone",
}

_BOOLEAN_COLUMNS = {
    "unread_only": "unread_only",
    "push_enabled": "push_enabled",
    "is_active": "is_active",
}


class TaskRepository:
    """Repository for scheduled digest tasks."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def add(
        self,
        name: str,
        cron_expression: str,
        scope: str = "all",
        scope_id: int | None = None,
        scope_name: str = "",
        hours: int = 24,
        target_lang: str = "Simplified Chinese",
        unread_only: bool = True,
        push_enabled: bool = False,
        push_config: dict | None = None,
        timezone: str = "Asia/Shanghai",
        is_active: bool = True,
        next_run_at: datetime | None = None,
    ) -> int:
        """Insert a task. Returns task ID."""
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO scheduled_tasks
                   (name, scope, scope_id, scope_name, hours, target_lang,
                    unread_only, push_enabled, push_config, cron_expression,
                    timezone, is_active, next_run_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    name, scope, scope_id, scope_name or "", hours, target_lang,
                    1 if unread_only else 0,
                    1 if push_enabled else 0,
                    json.dumps(push_config) if push_config else None,
                    cron_expression, timezone,
                    1 if is_active else 0,
                    format_timestamp(next_run_at),
                )
            )
            return cursor.lastrowid

    def get(self, task_id: int) -> DBScheduledTask | None:
        """Get a single task by ID."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM scheduled_tasks WHERE id = ?", (task_id,)
            ).fetchone()
            return row_to_task(row) if row else None

    def get_all(self, active_only: bool = False) -> list[DBScheduledTask]:
        """Get all tasks, newest first."""
        with self._db.conn() as conn:
            query = "SELECT * FROM scheduled_tasks"
            if active_only:
                query += " WHERE is_active = 1"
            query += " ORDER BY created_at DESC, id DESC"
            rows = conn.execute(query).fetchall()
            return [row_to_task(row) for row in rows]

    def update(self, task_id: int, **changes) -> bool:
        """
        Update task fields.

        Accepts any of the column names; push_config is stored as JSON.
        Unknown keys raise ValueError. Returns False if no row matched.
        """
        fields = []
        params: list = []
        for key, value in changes.items():
            if key in _UPDATABLE_COLUMNS:
                fields.append(f"{_UPDATABLE_COLUMNS[key]} = ?")
                params.append(value)
            elif key in _BOOLEAN_COLUMNS:
                fields.append(f"{_BOOLEAN_COLUMNS[key]} = ?")
                params.append(1 if value else 0)
            elif key == "push_config":
                fields.append("push_config = ?")
                params.append(json.dumps(value) if value else None)
            else:
                raise ValueError(f"Unknown task field: {key}")
        if not fields:
            return False

        fields.append("updated_at = CURRENT_TIMESTAMP")
        with self._db.conn() as conn:
            cursor = conn.execute(
                f"UPDATE scheduled_tasks SET {', '.join(fields)} WHERE id = ?",
                (*params, task_id)
            )
            return cursor.rowcount > 0

    def set_active(self, task_id: int, is_active: bool) -> bool:
        """Toggle a task's active flag."""
        return self.update(task_id, is_active=is_active)

    def record_run_started(self, task_id: int, started_at: datetime):
        """Stamp last_run_at and clear last_error at the beginning of a run."""
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE scheduled_tasks SET last_run_at = ?, last_error = NULL WHERE id = ?",
                (format_timestamp(started_at), task_id)
            )

    def record_success(self, task_id: int, next_run_at: datetime | None):
        """Clear last_error and store the next run time."""
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE scheduled_tasks SET next_run_at = ?, last_error = NULL WHERE id = ?",
                (format_timestamp(next_run_at), task_id)
            )

    def record_failure(self, task_id: int, error: str):
        """Store the error of the last run."""
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE scheduled_tasks SET last_error = ? WHERE id = ?",
                (error, task_id)
            )

    def set_next_run(self, task_id: int, next_run_at: datetime | None):
        """Store the next scheduled run time."""
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE scheduled_tasks SET next_run_at = ? WHERE id = ?",
                (format_timestamp(next_run_at), task_id)
            )

    def delete(self, task_id: int) -> bool:
        """Delete a task."""
        with self._db.conn() as conn:
            cursor = conn.execute("DELETE FROM scheduled_tasks WHERE id = ?", (task_id,))
            return cursor.rowcount > 0
