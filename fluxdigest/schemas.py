"""
Pydantic models for API request/response validation.
"""

from dataclasses import asdict
from typing import ClassVar

from pydantic import BaseModel

from .database.models import DBAIConfig, DBDigest, DBMinifluxConfig, DBScheduledTask
from .prompts import DEFAULT_TARGET_LANG
from .services.digest_service import DigestPage, GeneratedDigest
from .services.push_service import PushResult
from .vault import mask_api_key


def _iso(value) -> str | None:
    return value.isoformat() if value else None


# ─────────────────────────────────────────────────────────────
# Digest Schemas
# ─────────────────────────────────────────────────────────────

class DigestResponse(BaseModel):
    id: int | None
    title: str
    content: str
    scope: str
    scope_id: int | None
    scope_name: str
    article_count: int
    hours: int
    target_lang: str
    is_read: bool
    generated_at: str | None
    created_at: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_db(cls, digest: DBDigest) -> "DigestResponse":
        return cls(
            id=digest.id,
            title=digest.title,
            content=digest.content,
            scope=digest.scope,
            scope_id=digest.scope_id,
            scope_name=digest.scope_name,
            article_count=digest.article_count,
            hours=digest.hours,
            target_lang=digest.target_lang,
            is_read=digest.is_read,
            generated_at=_iso(digest.generated_at),
            created_at=_iso(digest.created_at),
            updated_at=_iso(digest.updated_at),
        )

    @classmethod
    def from_generated(cls, digest: GeneratedDigest) -> "DigestResponse":
        return cls(
            id=digest.id,
            title=digest.title,
            content=digest.content,
            scope=digest.scope,
            scope_id=digest.scope_id,
            scope_name=digest.scope_name,
            article_count=digest.article_count,
            hours=digest.hours,
            target_lang=digest.target_lang,
            is_read=digest.is_read,
            generated_at=_iso(digest.generated_at),
        )


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class DigestListResponse(BaseModel):
    digests: list[DigestResponse]
    pagination: PaginationResponse

    @classmethod
    def from_page(cls, page: DigestPage) -> "DigestListResponse":
        return cls(
            digests=[DigestResponse.from_db(d) for d in page.digests],
            pagination=PaginationResponse(
                page=page.page,
                limit=page.limit,
                total=page.total,
                total_pages=page.total_pages,
            ),
        )


class DigestCreateRequest(BaseModel):
    """Manually saved digest."""
    title: str
    content: str
    scope: str = "all"
    scope_id: int | None = None
    scope_name: str = ""
    article_count: int = 0
    hours: int = 24
    target_lang: str = DEFAULT_TARGET_LANG


class DigestUpdateRequest(BaseModel):
    title: str | None = None
    content: str | None = None
    is_read: bool | None = None


class ReadAllRequest(BaseModel):
    scope: str | None = None
    scope_id: int | None = None


class PromptTemplateResponse(BaseModel):
    template: str


# ─────────────────────────────────────────────────────────────
# Push Schemas
# ─────────────────────────────────────────────────────────────

class PushConfig(BaseModel):
    """Webhook target. An empty body picks the platform default template."""
    url: str
    method: str = "POST"
    body: str | None = None
    headers: dict[str, str] | None = None


class PushRequest(BaseModel):
    push_config: PushConfig


class PushResultResponse(BaseModel):
    success: bool
    status: int | str | None = None
    error: str | None = None
    chunks: int = 0
    details: list[dict] = []

    @classmethod
    def from_result(cls, result: PushResult | dict | None) -> "PushResultResponse | None":
        if result is None:
            return None
        if isinstance(result, dict):
            return cls(**result)
        return cls(**asdict(result))


# ─────────────────────────────────────────────────────────────
# Generation Schemas
# ─────────────────────────────────────────────────────────────

class DigestPreviewRequest(BaseModel):
    scope: str = "all"
    feed_id: int | None = None
    group_id: int | None = None
    hours: int = 24
    target_lang: str = DEFAULT_TARGET_LANG
    prompt: str | None = None
    unread_only: bool = True
    # Used only when no Miniflux connection is stored
    miniflux_api_url: str | None = None
    miniflux_api_key: str | None = None


class DigestGenerateRequest(DigestPreviewRequest):
    timezone: str | None = None
    scope_name: str | None = None
    push_config: PushConfig | None = None


class PreviewResponse(BaseModel):
    article_count: int
    estimated_tokens: int
    max_tokens: int | None = None


class JobCreatedResponse(BaseModel):
    job_id: str
    status: str


class JobStatusResponse(BaseModel):
    job_id: str
    status: str
    progress: int
    error: str | None = None
    digest: DigestResponse | None = None
    push: PushResultResponse | None = None


# ─────────────────────────────────────────────────────────────
# Scheduled Task Schemas
# ─────────────────────────────────────────────────────────────

class ScheduledTaskCreateRequest(BaseModel):
    name: str
    cron_expression: str
    scope: str = "all"
    scope_id: int | None = None
    scope_name: str = ""
    hours: int = 24
    target_lang: str = DEFAULT_TARGET_LANG
    unread_only: bool = True
    push_enabled: bool = False
    push_config: PushConfig | None = None
    timezone: str | None = None
    is_active: bool = True


class ScheduledTaskUpdateRequest(BaseModel):
    name: str | None = None
    cron_expression: str | None = None
    scope: str | None = None
    scope_id: int | None = None
    scope_name: str | None = None
    hours: int | None = None
    target_lang: str | None = None
    unread_only: bool | None = None
    push_enabled: bool | None = None
    push_config: PushConfig | None = None
    timezone: str | None = None
    is_active: bool | None = None

    # null clears these; for every other field null means "leave unchanged"
    CLEARABLE_FIELDS: ClassVar[frozenset[str]] = frozenset({"scope_id", "push_config"})

    def changes(self) -> dict:
        """Fields the client actually set, without nulls for non-clearable columns."""
        return {
            key: value
            for key, value in self.model_dump(exclude_unset=True).items()
            if value is not None or key in self.CLEARABLE_FIELDS
        }


class ScheduledTaskResponse(BaseModel):
    id: int
    name: str
    scope: str
    scope_id: int | None
    scope_name: str
    hours: int
    target_lang: str
    unread_only: bool
    push_enabled: bool
    push_config: str | None  # "configured" or None; webhook URLs are not echoed
    cron_expression: str
    timezone: str
    is_active: bool
    last_run_at: str | None
    next_run_at: str | None
    last_error: str | None
    created_at: str | None
    updated_at: str | None

    @classmethod
    def from_db(cls, task: DBScheduledTask) -> "ScheduledTaskResponse":
        return cls(
            id=task.id,
            name=task.name,
            scope=task.scope,
            scope_id=task.scope_id,
            scope_name=task.scope_name,
            hours=task.hours,
            target_lang=task.target_lang,
            unread_only=task.unread_only,
            push_enabled=task.push_enabled,
            push_config="configured" if task.push_config else None,
            cron_expression=task.cron_expression,
            timezone=task.timezone,
            is_active=task.is_active,
            last_run_at=_iso(task.last_run_at),
            next_run_at=_iso(task.next_run_at),
            last_error=task.last_error,
            created_at=_iso(task.created_at),
            updated_at=_iso(task.updated_at),
        )


class TaskRunResponse(BaseModel):
    success: bool
    digest: DigestResponse | None = None
    push: PushResultResponse | None = None
    error: str | None = None


class SchedulerStatusResponse(BaseModel):
    initialized: bool
    active_tasks: int
    task_ids: list[int]
    running_task_ids: list[int]


# ─────────────────────────────────────────────────────────────
# Miniflux Config Schemas
# ─────────────────────────────────────────────────────────────

class MinifluxConfigRequest(BaseModel):
    api_url: str
    api_key: str | None = None  # omitted keeps the stored key


class MinifluxConfigResponse(BaseModel):
    configured: bool
    api_url: str | None = None
    api_key_masked: str | None = None

    @classmethod
    def from_db(cls, row: DBMinifluxConfig | None, api_key: str | None) -> "MinifluxConfigResponse":
        if row is None:
            return cls(configured=False)
        return cls(
            configured=bool(row.api_url and row.api_key_encrypted),
            api_url=row.api_url,
            api_key_masked=mask_api_key(api_key),
        )


class MinifluxTestRequest(BaseModel):
    api_url: str | None = None
    api_key: str | None = None


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str | None = None
    error: str | None = None
    feed_count: int | None = None


# ─────────────────────────────────────────────────────────────
# AI Config Schemas
# ─────────────────────────────────────────────────────────────

class ProviderPresetResponse(BaseModel):
    id: str
    name: str
    api_url: str
    default_model: str
    models: list[str]


class AIConfigRequest(BaseModel):
    provider: str
    api_url: str | None = None  # defaults to the preset URL
    api_key: str | None = None  # omitted keeps the stored key
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    is_active: bool = True


class AIConfigResponse(BaseModel):
    provider: str
    api_url: str
    model: str | None
    api_key_masked: str | None
    has_api_key: bool
    temperature: float | None = None
    max_tokens: int | None = None
    is_active: bool
    updated_at: str | None = None

    @classmethod
    def from_db(cls, row: DBAIConfig, api_key: str | None) -> "AIConfigResponse":
        extra = row.extra_config or {}
        return cls(
            provider=row.provider,
            api_url=row.api_url,
            model=row.model,
            api_key_masked=mask_api_key(api_key),
            has_api_key=bool(row.api_key_encrypted),
            temperature=extra.get("temperature"),
            max_tokens=extra.get("max_tokens"),
            is_active=row.is_active,
            updated_at=_iso(row.updated_at),
        )


class AITestRequest(BaseModel):
    provider: str
    api_url: str | None = None
    api_key: str | None = None  # omitted uses the stored key for the provider
    model: str | None = None


class ChatMessage(BaseModel):
    role: str
    content: str


class ChatProxyRequest(BaseModel):
    """Chat through the stored provider config; provider defaults to the active one."""
    messages: list[ChatMessage]
    provider: str | None = None
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    stream: bool = True
