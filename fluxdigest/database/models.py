"""
Database models - dataclasses for database entities.
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class DBDigest:
    id: int
    title: str
    content: str
    scope: str
    scope_id: int | None
    scope_name: str
    article_count: int
    hours: int
    target_lang: str
    is_read: bool
    generated_at: datetime
    created_at: datetime
    updated_at: datetime | None = None


@dataclass
class DBScheduledTask:
    id: int
    name: str
    scope: str
    scope_id: int | None
    scope_name: str
    hours: int
    target_lang: str
    unread_only: bool
    push_enabled: bool
    push_config: dict | None  # {url, method, body, headers}
    cron_expression: str
    timezone: str
    is_active: bool
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class DBAIConfig:
    id: int
    provider: str
    api_url: str
    api_key_encrypted: str | None
    model: str | None
    extra_config: dict
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class DBMinifluxConfig:
    id: int
    name: str
    api_url: str
    api_key_encrypted: str | None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None
