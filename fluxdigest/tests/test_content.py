"""
Tests for article content preparation.

estimate_tokens is a weighted character count, not a real tokenizer, so
these tests pin the weights and the truncation behaviour rather than any
model's token counts.
"""

import pytest

from fluxdigest.content import (
    SAFE_CONTENT_LENGTH,
    estimate_tokens,
    prepare_article,
    prepare_articles,
    strip_html,
    truncate_by_tokens,
)


class TestEstimateTokens:
    """Tests for the character-weighted token estimate."""

    def test_empty(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens(None) == 0

    def test_latin_weight(self):
        assert estimate_tokens("abcdefghij") == pytest.approx(3.0)

    def test_cjk_weight(self):
        """CJK ideographs weigh 1.6 each."""
        assert estimate_tokens("新闻摘要") == pytest.approx(6.4)

    def test_mixed(self):
        assert estimate_tokens("AI 新闻") == pytest.approx(0.9 + 3.2)


class TestTruncateByTokens:
    """Tests for token-budget truncation."""

    def test_under_budget_unchanged(self):
        assert truncate_by_tokens("short text", 100) == "short text"

    def test_cut_adds_ellipsis(self):
        # 0.3 per char: the 11th char crosses 3.1
        assert truncate_by_tokens("a" * 20, 3.1) == "a" * 10 + "..."

    def test_cjk_cut_earlier(self):
        result = truncate_by_tokens("新" * 20, 2.5)
        assert result == "新" + "..."

    def test_output_within_budget_plus_ellipsis(self):
        text = "The quick brown fox 跳过了懒狗 " * 50
        for budget in (1, 5, 17, 100, 250):
            result = truncate_by_tokens(text, budget)
            body = result[:-3] if result.endswith("...") else result
            assert estimate_tokens(body) <= budget

    def test_longer_input_never_yields_shorter_output(self):
        """A prefix never truncates to more text than the string it prefixes."""
        text = "Mixed 中文 and English content, repeated. " * 40
        for budget in (5, 50, 120):
            lengths = [
                len(truncate_by_tokens(text[:n], budget))
                for n in range(0, len(text), 7)
            ]
            assert lengths == sorted(lengths)

    def test_empty(self):
        assert truncate_by_tokens("", 10) == ""
        assert truncate_by_tokens(None, 10) == ""


class TestStripHtml:
    """Tests for markup removal."""

    def test_strips_tags_and_collapses_whitespace(self):
        html = "<div><p>Hello   <b>world</b></p>\n\n<p>again</p></div>"
        assert strip_html(html) == "Hello world again"

    def test_empty(self):
        assert strip_html(None) == ""

    def test_pre_truncates_huge_input(self):
        html = "<p>" + "x" * (SAFE_CONTENT_LENGTH * 2) + "</p>"
        assert len(strip_html(html)) <= SAFE_CONTENT_LENGTH


class TestPrepareArticle:
    """Tests for converting Miniflux entries."""

    def test_fields(self):
        entry = {
            "title": "Title",
            "url": "https://example.com/a",
            "published_at": "2024-05-01T08:00:00Z",
            "content": "<p>Body</p>",
            "feed": {"id": 7, "title": "Feed", "category": {"title": "Cat"}},
        }
        article = prepare_article(entry, 3)
        assert article.index == 3
        assert article.title == "Title"
        assert article.feed_title == "Feed"
        assert article.feed_id == 7
        assert article.category_name == "Cat"
        assert article.summary == "Body"

    def test_entry_feed_id_wins(self):
        article = prepare_article({"feed_id": 5, "feed": {"id": 9}}, 1)
        assert article.feed_id == 5

    def test_missing_fields(self):
        article = prepare_article({}, 1)
        assert article.title == ""
        assert article.feed_id is None
        assert article.url is None
        assert article.summary == ""


class TestPrepareArticles:
    """Tests for batched preparation."""

    @pytest.mark.asyncio
    async def test_indexes_follow_input_order_across_batches(self):
        entries = [{"title": f"Article {i}", "content": "x"} for i in range(45)]
        articles = await prepare_articles(entries, batch_size=20)
        assert [a.index for a in articles] == list(range(1, 46))
        assert articles[44].title == "Article 44"

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await prepare_articles([]) == []
