"""
Digest repository - CRUD operations for generated and saved digests.
"""

from datetime import datetime, timezone

from .connection import DatabaseConnection
from .converters import row_to_digest, format_timestamp
from .models import DBDigest


class DigestRepository:
    """Repository for digest operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def add(
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
        """Insert a digest. Returns digest ID."""
        if not content or not content.strip():
            raise ValueError("Digest content must not be empty")
        generated_at = generated_at or datetime.now(timezone.utc)
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO digests
                   (title, content, scope, scope_id, scope_name, article_count,
                    hours, target_lang, is_read, generated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0, ?)""",
                (
                    title, content, scope or "all", scope_id, scope_name or "",
                    article_count, hours, target_lang,
                    format_timestamp(generated_at),
                )
            )
            return cursor.lastrowid

    def get(self, digest_id: int) -> DBDigest | None:
        """Get a single digest by ID."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM digests WHERE id = ?", (digest_id,)
            ).fetchone()
            return row_to_digest(row) if row else None

    def _filters(
        self,
        scope: str | None,
        scope_id: int | None,
        is_read: bool | None,
    ) -> tuple[str, list]:
        clauses = ["1=1"]
        params: list = []
        if scope:
            clauses.append("scope = ?")
            params.append(scope)
        if scope_id is not None:
            clauses.append("scope_id = ?")
            params.append(scope_id)
        if is_read is not None:
            clauses.append("is_read = ?")
            params.append(1 if is_read else 0)
        return " AND ".join(clauses), params

    def get_many(
        self,
        scope: str | None = None,
        scope_id: int | None = None,
        is_read: bool | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[DBDigest]:
        """Get digests, newest first."""
        where, params = self._filters(scope, scope_id, is_read)
        with self._db.conn() as conn:
            rows = conn.execute(
                f"""SELECT * FROM digests WHERE {where}
                    ORDER BY generated_at DESC, id DESC
                    LIMIT ? OFFSET ?""",
                (*params, limit, offset)
            ).fetchall()
            return [row_to_digest(row) for row in rows]

    def count(
        self,
        scope: str | None = None,
        scope_id: int | None = None,
        is_read: bool | None = None,
    ) -> int:
        """Count digests matching the filters."""
        where, params = self._filters(scope, scope_id, is_read)
        with self._db.conn() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) AS count FROM digests WHERE {where}", params
            ).fetchone()
            return row["count"]

    def update(
        self,
        digest_id: int,
        title: str | None = None,
        content: str | None = None,
        is_read: bool | None = None,
    ) -> bool:
        """Update a digest. Returns False if nothing matched."""
        fields = []
        params: list = []
        if title is not None:
            fields.append("title = ?")
            params.append(title)
        if content is not None:
            if not content.strip():
                raise ValueError("Digest content must not be empty")
            fields.append("content = ?")
            params.append(content)
        if is_read is not None:
            fields.append("is_read = ?")
            params.append(1 if is_read else 0)
        if not fields:
            return False

        fields.append("updated_at = CURRENT_TIMESTAMP")
        with self._db.conn() as conn:
            cursor = conn.execute(
                f"UPDATE digests SET {', '.join(fields)} WHERE id = ?",
                (*params, digest_id)
            )
            return cursor.rowcount > 0

    def delete(self, digest_id: int) -> bool:
        """Delete a digest."""
        with self._db.conn() as conn:
            cursor = conn.execute("DELETE FROM digests WHERE id = ?", (digest_id,))
            return cursor.rowcount > 0

    def mark_all_read(self, scope: str | None = None, scope_id: int | None = None) -> int:
        """Mark every unread digest in scope as read. Returns rows changed."""
        where, params = self._filters(scope, scope_id, is_read=False)
        with self._db.conn() as conn:
            cursor = conn.execute(
                f"UPDATE digests SET is_read = 1, updated_at = CURRENT_TIMESTAMP WHERE {where}",
                params
            )
            return cursor.rowcount
