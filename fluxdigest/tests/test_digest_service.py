"""
Tests for the digest generation pipeline.

The Miniflux client and the LLM call are replaced with fakes; the database
is a real temporary SQLite file.
"""

import asyncio
import re

import pytest

from fluxdigest.content import PreparedArticle
from fluxdigest.exceptions import ConfigurationError, EmptyResponseError, MinifluxError
from fluxdigest.providers import ProviderConfig
from fluxdigest.services.digest_service import (
    DigestOptions,
    DigestService,
    SourceConfig,
    build_sources_appendix,
    format_title,
    is_english,
)
from fakes import (
    FIXED_NOW,
    SAMPLE_ENTRIES,
    FakeChat,
    FakeMinifluxClient,
    store_connections,
)

SOURCE = SourceConfig(api_url="https://miniflux.example.com", api_key="token")
PROVIDER = ProviderConfig(
    provider="openai", api_url="https://api.openai.com/v1", api_key="sk-test", model="gpt-4o-mini"
)
TITLE_PATTERN = re.compile(r"^All Subscriptions · Last 24h · Digest \d{2}-\d{2}-\d{2}:\d{2}$")


def make_service(db, source=None, chat=None, vault=None, **kwargs) -> DigestService:
    source = source if source is not None else FakeMinifluxClient(SAMPLE_ENTRIES)
    return DigestService(
        db,
        vault,
        source_factory=lambda api_url, api_key: source,
        chat_fn=chat or FakeChat("ABC"),
        clock=lambda: FIXED_NOW,
        **kwargs,
    )


def english_options(**overrides) -> DigestOptions:
    fields = {"scope": "all", "hours": 24, "target_lang": "English", "unread_only": True, "timezone": "UTC"}
    fields.update(overrides)
    return DigestOptions(**fields)


class TestGenerate:
    """End-to-end generation with a stub provider."""

    @pytest.mark.asyncio
    async def test_three_articles_produce_persisted_digest(self, test_db):
        chat = FakeChat("ABC")
        service = make_service(test_db, chat=chat)

        result = await service.generate(SOURCE, PROVIDER, english_options())

        assert result.success is True
        digest = result.digest
        assert digest.content == (
            "ABC\n\n---\n\n## Feed Sources\n\n"
            "- [Tech News](#/feed/10)\n"
            "- [World [Daily\\]](#/feed/11)"
        )
        assert TITLE_PATTERN.match(digest.title)
        assert digest.title.endswith("05-01-09:30")
        assert digest.article_count == 3
        assert digest.scope_name == "All Subscriptions"

        stored = test_db.get_digest(digest.id)
        assert stored.content == digest.content
        assert stored.title == digest.title
        assert stored.is_read is False

        config, request = chat.calls[0]
        assert config is PROVIDER
        assert request.stream is True
        assert request.params["temperature"] == 0.7
        prompt = request.messages[0]["content"]
        for entry in SAMPLE_ENTRIES:
            assert entry["title"] in prompt

    @pytest.mark.asyncio
    async def test_fetch_parameters(self, test_db):
        source = FakeMinifluxClient(SAMPLE_ENTRIES)
        service = make_service(test_db, source=source)

        await service.generate(SOURCE, PROVIDER, english_options(scope="feed", feed_id=10, hours=72))

        assert source.calls == [{"hours": 72, "feed_id": 10, "group_id": None, "unread_only": True}]

    @pytest.mark.asyncio
    async def test_no_articles_placeholder_twice(self, test_db):
        service = make_service(test_db, source=FakeMinifluxClient([]))

        first = await service.generate(SOURCE, PROVIDER, english_options())
        second = await service.generate(SOURCE, PROVIDER, english_options())

        for result in (first, second):
            assert result.success is True
            assert result.digest.article_count == 0
            assert result.digest.content
            assert result.digest.id is None
        assert first.digest.content == "No unread articles in the past 24 hours."
        assert first.digest.title == "All Subscriptions - No Articles"
        assert test_db.count_digests() == 0

    @pytest.mark.asyncio
    async def test_placeholder_in_chinese(self, test_db):
        service = make_service(test_db, source=FakeMinifluxClient([]))

        result = await service.generate(
            SOURCE, PROVIDER, DigestOptions(target_lang="Simplified Chinese", unread_only=False)
        )

        assert result.digest.title == "全部订阅 - 无文章"
        assert result.digest.content == "在过去 24 小时内没有文章。"

    @pytest.mark.asyncio
    async def test_scope_names(self, test_db):
        service = make_service(test_db)

        feed = await service.generate(SOURCE, PROVIDER, english_options(scope="feed", feed_id=10))
        group = await service.generate(SOURCE, PROVIDER, english_options(scope="group", group_id=3))
        named = await service.generate(SOURCE, PROVIDER, english_options(scope_name="Morning Read"))

        assert feed.digest.scope_name == "Tech News"
        assert feed.digest.scope_id == 10
        assert group.digest.scope_name == "Tech"
        assert group.digest.scope_id == 3
        assert named.digest.title.startswith("Morning Read · ")

    @pytest.mark.asyncio
    async def test_missing_configuration_raises(self, test_db):
        service = make_service(test_db)

        with pytest.raises(ConfigurationError, match="AI not configured"):
            await service.generate(SOURCE, None, english_options())
        with pytest.raises(ConfigurationError, match="Miniflux not configured"):
            await service.generate(None, PROVIDER, english_options())

    @pytest.mark.asyncio
    async def test_empty_ai_response_is_an_error(self, test_db):
        service = make_service(test_db, chat=FakeChat("   "))

        result = await service.generate(SOURCE, PROVIDER, english_options())

        assert result.success is False
        assert "empty" in result.error.lower()
        assert test_db.count_digests() == 0

    @pytest.mark.asyncio
    async def test_empty_stream_error_propagates_as_failure(self, test_db):
        async def chat(config, request):
            raise EmptyResponseError("AI returned an empty response")

        result = await make_service(test_db, chat=chat).generate(SOURCE, PROVIDER, english_options())
        assert result.success is False

    @pytest.mark.asyncio
    async def test_timeout(self, test_db):
        async def slow_chat(config, request):
            await asyncio.sleep(10)
            return "late"

        service = make_service(test_db, chat=slow_chat, ai_timeout=0.01)
        result = await service.generate(SOURCE, PROVIDER, english_options())

        assert result.success is False
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_source_error_reported(self, test_db):
        class FailingSource(FakeMinifluxClient):
            async def list_recent_articles(self, **kwargs):
                raise MinifluxError("Miniflux API error: 500 - down", status_code=500)

        result = await make_service(test_db, source=FailingSource()).generate(
            SOURCE, PROVIDER, english_options()
        )
        assert result.success is False
        assert result.error == "Miniflux API error: 500 - down"


class TestPreview:
    """Tests for token preview."""

    @pytest.mark.asyncio
    async def test_counts(self, test_db):
        result = await make_service(test_db).preview(SOURCE, english_options())
        assert result.article_count == 3
        assert result.estimated_tokens > 0

    @pytest.mark.asyncio
    async def test_no_articles(self, test_db):
        result = await make_service(test_db, source=FakeMinifluxClient([])).preview(
            SOURCE, english_options()
        )
        assert (result.article_count, result.estimated_tokens) == (0, 0)


class TestStoredConfig:
    """Tests for decrypting stored connections."""

    def test_active_configs(self, test_db, vault):
        store_connections(test_db, vault)
        service = make_service(test_db, vault=vault)

        provider = service.active_provider_config()
        source = service.active_source_config()

        assert provider.api_key == "sk-test-1234567890abcd"
        assert provider.model == "gpt-4o-mini"
        assert source.api_key == "miniflux-token-abcdef"
        assert source.api_url == "https://miniflux.example.com"

    def test_nothing_stored(self, test_db, vault):
        service = make_service(test_db, vault=vault)
        assert service.active_provider_config() is None
        assert service.active_source_config() is None


class TestStoredDigests:
    """Tests for digest CRUD through the service."""

    def test_save_list_and_mark_read(self, test_db):
        service = make_service(test_db)
        for i in range(3):
            service.save_digest(title=f"D{i}", content="body", scope="feed", scope_id=i)

        page = service.list_digests(page=1, limit=2)
        assert page.total == 3
        assert page.total_pages == 2
        assert len(page.digests) == 2

        first = page.digests[0]
        assert service.mark_read(first.id) is True
        assert service.get_digest(first.id).is_read is True
        assert service.mark_read(9999) is False

        assert service.mark_all_read() == 2
        assert service.list_digests(is_read=False).total == 0

    def test_update_and_delete(self, test_db):
        service = make_service(test_db)
        digest = service.save_digest(title="Old", content="body")

        updated = service.update_digest(digest.id, title="New")
        assert updated.title == "New"
        assert updated.content == "body"
        assert service.update_digest(9999, title="x") is None

        assert service.delete_digest(digest.id) is True
        assert service.get_digest(digest.id) is None


class TestHelpers:
    """Tests for titles and the sources appendix."""

    def test_title_windows(self):
        assert format_title("Tech", 72, True, FIXED_NOW) == "Tech · Past 3d · Digest 05-01-09:30"
        assert format_title("Tech", 5, True, FIXED_NOW) == "Tech · Last 24h · Digest 05-01-09:30"
        assert format_title("科技", 168, False, FIXED_NOW) == "科技 · 过去7天 · 简报 05-01-09:30"

    def test_is_english(self):
        assert is_english("English")
        assert is_english("en")
        assert not is_english("Simplified Chinese")

    def test_appendix_dedupes_and_links(self):
        def article(index, feed_title, feed_id):
            return PreparedArticle(index, "t", feed_title, feed_id, "", None, None, "")

        appendix = build_sources_appendix(
            [article(1, "A", 1), article(2, "A", 1), article(3, "No Id", None), article(4, "B", 2)],
            english=False,
        )
        assert appendix == "## 订阅源清单\n\n- [A](#/feed/1)\n- [B](#/feed/2)\n- No Id"

    def test_appendix_empty(self):
        assert build_sources_appendix([], english=True) == ""
