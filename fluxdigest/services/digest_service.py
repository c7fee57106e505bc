"""
Digest service: business logic for digest generation and management.

Generation pipeline: resolve scope name -> fetch recent articles from
Miniflux -> prepare content -> compose prompt -> stream the LLM response ->
append the feed sources list -> title -> persist.
"""

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import httpx

from ..config import config
from ..content import PreparedArticle, estimate_tokens, prepare_articles
from ..database import Database
from ..database.models import DBAIConfig, DBDigest
from ..exceptions import (
    AITimeoutError,
    ConfigurationError,
    DigestError,
    EmptyResponseError,
)
from ..miniflux import MinifluxClient
from ..prompts import DEFAULT_TARGET_LANG, build_digest_prompt
from ..providers import ChatRequest, ProviderConfig, collect_chat, get_provider_preset
from ..vault import CredentialVault

logger = logging.getLogger(__name__)

STANDARD_WINDOWS = (0, 12, 24, 72, 168)
FALLBACK_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 0.7

RANGE_LABELS_EN = {12: "Last 12h", 24: "Last 24h", 72: "Past 3d", 168: "Past 7d", 0: "All"}
RANGE_LABELS_ZH = {12: "最近12小时", 24: "最近24小时", 72: "过去三天", 168: "过去7天", 0: "全部"}

ChatFn = Callable[[ProviderConfig, ChatRequest], Awaitable[str]]
SourceFactory = Callable[[str, str], MinifluxClient]


@dataclass
class SourceConfig:
    """Decrypted Miniflux connection settings."""
    api_url: str
    api_key: str


@dataclass
class DigestOptions:
    scope: str = "all"  # all | feed | group
    feed_id: int | None = None
    group_id: int | None = None
    hours: int = 24
    target_lang: str = DEFAULT_TARGET_LANG
    custom_prompt: str | None = None
    unread_only: bool = True
    timezone: str | None = None
    scope_name: str | None = None  # client-supplied display name wins


@dataclass
class GeneratedDigest:
    """A generated digest; id is None for placeholders that were not stored."""
    id: int | None
    title: str
    content: str
    scope: str
    scope_id: int | None
    scope_name: str
    article_count: int
    hours: int
    target_lang: str
    generated_at: datetime
    is_read: bool = False


@dataclass
class GenerationResult:
    success: bool
    digest: GeneratedDigest | None = None
    error: str | None = None


@dataclass
class PreviewResult:
    article_count: int
    estimated_tokens: int
    scope_name: str = ""


@dataclass
class DigestPage:
    digests: list[DBDigest]
    page: int
    limit: int
    total: int
    total_pages: int = field(init=False)

    def __post_init__(self):
        self.total_pages = math.ceil(self.total / self.limit) if self.limit else 0


def is_english(target_lang: str | None) -> bool:
    lang = (target_lang or "").lower()
    return "english" in lang or "en" in lang


def normalize_window(hours: int) -> int:
    """Map non-standard windows onto 24 hours for labelling."""
    return hours if hours in STANDARD_WINDOWS else 24


def format_title(scope_name: str, hours: int, english: bool, moment: datetime) -> str:
    """Title as '<scope> · <window label> · Digest MM-DD-HH:MM'."""
    window = normalize_window(hours)
    if english:
        label, word = RANGE_LABELS_EN[window], "Digest"
    else:
        label, word = RANGE_LABELS_ZH[window], "简报"
    return f"{scope_name} · {label} · {word} {moment.strftime('%m-%d-%H:%M')}"


def localize(moment: datetime, tz_name: str | None) -> datetime:
    """Convert to the named IANA zone; unknown zones fall back to local time."""
    if tz_name:
        try:
            return moment.astimezone(ZoneInfo(tz_name))
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown timezone {tz_name!r}, using local time")
    return moment.astimezone()


def _escape_link_text(text: str) -> str:
    return text.replace("]", "\\]")


def build_sources_appendix(articles: list[PreparedArticle], english: bool) -> str:
    """
    Markdown list of the feeds that contributed articles.

    Feeds are deduplicated by id (or by title when there is no id); feeds with
    an id link to the in-app feed view.
    """
    seen: dict = {}
    for article in articles:
        key = article.feed_id if article.feed_id is not None else article.feed_title
        if key in (None, "") or key in seen:
            continue
        seen[key] = (article.feed_title or ("Feed" if english else "订阅源"), article.feed_id)

    if not seen:
        return ""

    linked = [
        f"- [{_escape_link_text(title)}](#/feed/{feed_id})"
        for title, feed_id in seen.values()
        if feed_id is not None
    ]
    unlinked = [f"- {title}" for title, feed_id in seen.values() if feed_id is None]
    heading = "## Feed Sources" if english else "## 订阅源清单"
    return f"{heading}\n\n" + "\n".join(linked + unlinked)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DigestService:
    """Service for digest generation and digest-related business logic."""

    def __init__(
        self,
        db: Database,
        vault: CredentialVault | None = None,
        source_factory: SourceFactory = MinifluxClient,
        chat_fn: ChatFn = collect_chat,
        clock: Callable[[], datetime] = _utcnow,
        ai_timeout: float | None = None,
    ):
        self.db = db
        self.vault = vault
        self.source_factory = source_factory
        self.chat_fn = chat_fn
        self.clock = clock
        self.ai_timeout = ai_timeout if ai_timeout is not None else config.AI_TIMEOUT_SECONDS

    # ─────────────────────────────────────────────────────────────
    # Stored configuration
    # ─────────────────────────────────────────────────────────────

    def _decrypt(self, token: str | None) -> str | None:
        if not token:
            return None
        if self.vault is None:
            raise ConfigurationError("Credential vault not available")
        return self.vault.decrypt(token)

    def provider_config_from(self, row: DBAIConfig | None) -> ProviderConfig | None:
        """Build a decrypted ProviderConfig from a stored AI config row."""
        if row is None:
            return None
        api_key = self._decrypt(row.api_key_encrypted)
        if not api_key:
            return None
        preset = get_provider_preset(row.provider) or {}
        extra = row.extra_config or {}
        return ProviderConfig(
            provider=row.provider,
            api_url=row.api_url,
            api_key=api_key,
            model=row.model or preset.get("default_model") or FALLBACK_MODEL,
            temperature=extra.get("temperature"),
            max_tokens=extra.get("max_tokens"),
        )

    def active_provider_config(self) -> ProviderConfig | None:
        return self.provider_config_from(self.db.configs.get_active_ai_config())

    def active_source_config(self) -> SourceConfig | None:
        row = self.db.configs.get_active_miniflux_config()
        if row is None or not row.api_url:
            return None
        api_key = self._decrypt(row.api_key_encrypted)
        if not api_key:
            return None
        return SourceConfig(api_url=row.api_url.rstrip("/"), api_key=api_key)

    # ─────────────────────────────────────────────────────────────
    # Generation
    # ─────────────────────────────────────────────────────────────

    async def resolve_scope_name(self, client: MinifluxClient, options: DigestOptions) -> str:
        """Display name for the digest scope; lookup failures fall back to generic labels."""
        english = is_english(options.target_lang)
        if options.scope_name:
            return options.scope_name

        if options.scope == "feed" and options.feed_id:
            try:
                feed = await client.get_feed(int(options.feed_id))
                return (feed or {}).get("title") or ("Feed" if english else "订阅源")
            except (DigestError, httpx.HTTPError):
                logger.warning(f"Feed {options.feed_id} not found")
                return "Feed" if english else "订阅源"

        if options.scope == "group" and options.group_id:
            try:
                categories = await client.get_categories()
                category = next(
                    (c for c in categories or [] if c.get("id") == int(options.group_id)), None
                )
                return (category or {}).get("title") or ("Group" if english else "分组")
            except (DigestError, httpx.HTTPError):
                logger.warning(f"Category {options.group_id} not found")
                return "Group" if english else "分组"

        return "All Subscriptions" if english else "全部订阅"

    @staticmethod
    def scope_id(options: DigestOptions) -> int | None:
        if options.scope == "feed" and options.feed_id:
            return int(options.feed_id)
        if options.scope == "group" and options.group_id:
            return int(options.group_id)
        return None

    async def _fetch(self, client: MinifluxClient, options: DigestOptions) -> list[dict]:
        return await client.list_recent_articles(
            hours=options.hours,
            feed_id=options.feed_id if options.scope == "feed" else None,
            group_id=options.group_id if options.scope == "group" else None,
            unread_only=options.unread_only,
        )

    def _placeholder(self, options: DigestOptions, scope_name: str) -> GeneratedDigest:
        english = is_english(options.target_lang)
        if english:
            window = f"in the past {options.hours} hours" if options.hours > 0 else "in scope"
            message = f"No {'unread ' if options.unread_only else ''}articles {window}."
            title = f"{scope_name} - No Articles"
        else:
            window = f"在过去 {options.hours} 小时内" if options.hours > 0 else "范围内"
            message = f"{window}没有{'未读' if options.unread_only else ''}文章。"
            title = f"{scope_name} - 无文章"

        return GeneratedDigest(
            id=None,
            title=title,
            content=message,
            scope=options.scope,
            scope_id=self.scope_id(options),
            scope_name=scope_name,
            article_count=0,
            hours=options.hours,
            target_lang=options.target_lang,
            generated_at=self.clock(),
        )

    async def _call_ai(self, provider_config: ProviderConfig, prompt: str) -> str:
        request = ChatRequest(
            model=provider_config.model or FALLBACK_MODEL,
            messages=[{"role": "user", "content": prompt}],
            stream=True,
            params={
                "temperature": (
                    provider_config.temperature
                    if provider_config.temperature is not None
                    else DEFAULT_TEMPERATURE
                ),
            },
        )
        try:
            content = await asyncio.wait_for(
                self.chat_fn(provider_config, request), timeout=self.ai_timeout
            )
        except asyncio.TimeoutError as e:
            raise AITimeoutError("AI request timed out, please try again later") from e

        content = (content or "").strip()
        if not content:
            raise EmptyResponseError("AI returned an empty response, check the model configuration")
        return content

    async def generate(
        self,
        source_config: SourceConfig | None,
        provider_config: ProviderConfig | None,
        options: DigestOptions,
    ) -> GenerationResult:
        """
        Generate and store a digest.

        Raises:
            ConfigurationError: If the AI or Miniflux configuration is missing

        Returns:
            GenerationResult; upstream failures are reported as success=False
        """
        if provider_config is None or not provider_config.api_key or not provider_config.api_url:
            raise ConfigurationError("AI not configured. Please configure AI settings first.")
        if source_config is None or not source_config.api_url or not source_config.api_key:
            raise ConfigurationError("Miniflux not configured. Please configure Miniflux settings first.")

        try:
            digest = await self._generate(source_config, provider_config, options)
        except (DigestError, httpx.HTTPError) as e:
            logger.error(f"Digest generation failed: {e}")
            return GenerationResult(success=False, error=str(e) or type(e).__name__)
        return GenerationResult(success=True, digest=digest)

    async def _generate(
        self,
        source_config: SourceConfig,
        provider_config: ProviderConfig,
        options: DigestOptions,
    ) -> GeneratedDigest:
        english = is_english(options.target_lang)
        client = self.source_factory(source_config.api_url, source_config.api_key)

        scope_name = await self.resolve_scope_name(client, options)
        entries = await self._fetch(client, options)

        if not entries:
            logger.info(f"No articles for {scope_name} in the last {options.hours}h")
            return self._placeholder(options, scope_name)

        articles = await prepare_articles(entries)
        prompt = build_digest_prompt(
            articles,
            target_lang=options.target_lang,
            scope_name=scope_name,
            custom_prompt=options.custom_prompt,
        )

        logger.info(f"Generating digest for {scope_name}: {len(articles)} articles")
        content = await self._call_ai(provider_config, prompt)

        appendix = build_sources_appendix(articles, english)
        if appendix:
            content = (content.rstrip() + "\n\n---\n\n" + appendix).strip()

        generated_at = self.clock()
        title = format_title(scope_name, options.hours, english, localize(generated_at, options.timezone))
        scope_id = self.scope_id(options)

        digest_id = self.db.add_digest(
            title=title,
            content=content,
            scope=options.scope,
            scope_id=scope_id,
            scope_name=scope_name,
            article_count=len(articles),
            hours=options.hours,
            target_lang=options.target_lang,
            generated_at=generated_at,
        )
        logger.info(f"Saved digest {digest_id}: {title}")

        return GeneratedDigest(
            id=digest_id,
            title=title,
            content=content,
            scope=options.scope,
            scope_id=scope_id,
            scope_name=scope_name,
            article_count=len(articles),
            hours=options.hours,
            target_lang=options.target_lang,
            generated_at=generated_at,
        )

    async def preview(self, source_config: SourceConfig | None, options: DigestOptions) -> PreviewResult:
        """
        Article count and estimated prompt tokens, without calling the LLM.

        Raises:
            ConfigurationError: If Miniflux is not configured
        """
        if source_config is None:
            raise ConfigurationError("Miniflux not configured")

        client = self.source_factory(source_config.api_url, source_config.api_key)
        scope_name = await self.resolve_scope_name(client, options)
        entries = await self._fetch(client, options)
        if not entries:
            return PreviewResult(article_count=0, estimated_tokens=0, scope_name=scope_name)

        articles = await prepare_articles(entries)
        prompt = build_digest_prompt(
            articles,
            target_lang=options.target_lang,
            scope_name=scope_name,
            custom_prompt=options.custom_prompt,
        )
        return PreviewResult(
            article_count=len(articles),
            estimated_tokens=math.ceil(estimate_tokens(prompt)),
            scope_name=scope_name,
        )

    # ─────────────────────────────────────────────────────────────
    # Stored digests
    # ─────────────────────────────────────────────────────────────

    def list_digests(
        self,
        page: int = 1,
        limit: int = 20,
        scope: str | None = None,
        scope_id: int | None = None,
        is_read: bool | None = None,
    ) -> DigestPage:
        page = max(page, 1)
        digests = self.db.get_digests(
            scope=scope,
            scope_id=scope_id,
            is_read=is_read,
            limit=limit,
            offset=(page - 1) * limit,
        )
        total = self.db.count_digests(scope=scope, scope_id=scope_id, is_read=is_read)
        return DigestPage(digests=digests, page=page, limit=limit, total=total)

    def get_digest(self, digest_id: int) -> DBDigest | None:
        return self.db.get_digest(digest_id)

    def save_digest(
        self,
        title: str,
        content: str,
        scope: str = "all",
        scope_id: int | None = None,
        scope_name: str = "",
        article_count: int = 0,
        hours: int = 24,
        target_lang: str = DEFAULT_TARGET_LANG,
    ) -> DBDigest:
        """Store a digest written or edited by the client."""
        digest_id = self.db.add_digest(
            title=title,
            content=content,
            scope=scope,
            scope_id=scope_id,
            scope_name=scope_name,
            article_count=article_count,
            hours=hours,
            target_lang=target_lang,
            generated_at=self.clock(),
        )
        return self.db.get_digest(digest_id)

    def update_digest(
        self,
        digest_id: int,
        title: str | None = None,
        content: str | None = None,
        is_read: bool | None = None,
    ) -> DBDigest | None:
        if self.db.get_digest(digest_id) is None:
            return None
        self.db.update_digest(digest_id, title=title, content=content, is_read=is_read)
        return self.db.get_digest(digest_id)

    def delete_digest(self, digest_id: int) -> bool:
        return self.db.delete_digest(digest_id)

    def mark_read(self, digest_id: int) -> bool:
        if self.db.get_digest(digest_id) is None:
            return False
        self.db.update_digest(digest_id, is_read=True)
        return True

    def mark_all_read(self, scope: str | None = None, scope_id: int | None = None) -> int:
        return self.db.digests.mark_all_read(scope, scope_id)
