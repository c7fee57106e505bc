"""
Database row converters - convert SQLite rows to dataclasses.
"""

import json
import sqlite3
from datetime import datetime, timezone

from .models import DBDigest, DBScheduledTask, DBAIConfig, DBMinifluxConfig


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse a stored timestamp; naive values (CURRENT_TIMESTAMP) are UTC."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime | None) -> str | None:
    """Serialize a timestamp for storage as UTC ISO-8601."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _load_json(raw: str | None) -> dict | None:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def row_to_digest(row: sqlite3.Row) -> DBDigest:
    """Convert a database row to a DBDigest."""
    created_at = parse_timestamp(row["created_at"]) or datetime.now(timezone.utc)
    return DBDigest(
        id=row["id"],
        title=row["title"],
        content=row["content"],
        scope=row["scope"] or "all",
        scope_id=row["scope_id"],
        scope_name=row["scope_name"] or "",
        article_count=row["article_count"] or 0,
        hours=row["hours"] if row["hours"] is not None else 24,
        target_lang=row["target_lang"] or "",
        is_read=bool(row["is_read"]),
        generated_at=parse_timestamp(row["generated_at"]) or created_at,
        created_at=created_at,
        updated_at=parse_timestamp(row["updated_at"]),
    )


def row_to_task(row: sqlite3.Row) -> DBScheduledTask:
    """Convert a database row to a DBScheduledTask."""
    return DBScheduledTask(
        id=row["id"],
        name=row["name"],
        scope=row["scope"] or "all",
        scope_id=row["scope_id"],
        scope_name=row["scope_name"] or "",
        hours=row["hours"] if row["hours"] is not None else 24,
        target_lang=row["target_lang"] or "",
        unread_only=bool(row["unread_only"]),
        push_enabled=bool(row["push_enabled"]),
        push_config=_load_json(row["push_config"]),
        cron_expression=row["cron_expression"],
        timezone=row["timezone"] or "",
        is_active=bool(row["is_active"]),
        last_run_at=parse_timestamp(row["last_run_at"]),
        next_run_at=parse_timestamp(row["next_run_at"]),
        last_error=row["last_error"],
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def row_to_ai_config(row: sqlite3.Row) -> DBAIConfig:
    """Convert a database row to a DBAIConfig."""
    return DBAIConfig(
        id=row["id"],
        provider=row["provider"],
        api_url=row["api_url"],
        api_key_encrypted=row["api_key_encrypted"],
        model=row["model"],
        extra_config=_load_json(row["extra_config"]) or {},
        is_active=bool(row["is_active"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )


def row_to_miniflux_config(row: sqlite3.Row) -> DBMinifluxConfig:
    """Convert a database row to a DBMinifluxConfig."""
    return DBMinifluxConfig(
        id=row["id"],
        name=row["name"] or "default",
        api_url=row["api_url"],
        api_key_encrypted=row["api_key_encrypted"],
        is_active=bool(row["is_active"]),
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
    )
