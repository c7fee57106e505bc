"""
Article content preparation for digest prompts.

Strips markup from Miniflux entry bodies and truncates each to a token
budget so large windows stay within model context limits.
"""

import asyncio
import re
from dataclasses import dataclass

from bs4 import BeautifulSoup

SAFE_CONTENT_LENGTH = 50_000
DEFAULT_MAX_TOKENS = 1000
DEFAULT_BATCH_SIZE = 20

CJK_TOKEN_WEIGHT = 1.6
OTHER_TOKEN_WEIGHT = 0.3

_WHITESPACE = re.compile(r"\s+")


@dataclass
class PreparedArticle:
    """An entry reduced to what the prompt needs."""
    index: int
    title: str
    feed_title: str
    feed_id: int | None
    category_name: str
    published_at: str | None
    url: str | None
    summary: str


def _is_cjk(char: str) -> bool:
    return 0x4E00 <= ord(char) <= 0x9FFF


def estimate_tokens(text: str | None) -> float:
    """
    Rough token estimate: CJK ideographs count 1.6, everything else 0.3.

    Not a tokenizer; only used to keep prompts within budget.
    """
    if not text:
        return 0.0
    return sum(CJK_TOKEN_WEIGHT if _is_cjk(char) else OTHER_TOKEN_WEIGHT for char in text)


def truncate_by_tokens(text: str | None, max_tokens: float) -> str:
    """
    Cut text at the first character whose running estimate reaches max_tokens.

    Returns the prefix before that character plus "..."; text under budget is
    returned unchanged.
    """
    if not text:
        return ""

    total = 0.0
    for i, char in enumerate(text):
        total += CJK_TOKEN_WEIGHT if _is_cjk(char) else OTHER_TOKEN_WEIGHT
        if total >= max_tokens:
            return text[:i] + "..."
    return text


def strip_html(content: str | None) -> str:
    """Remove markup and collapse whitespace."""
    if not content:
        return ""
    # Bound the work done on pathological entries before parsing
    if len(content) > SAFE_CONTENT_LENGTH:
        content = content[:SAFE_CONTENT_LENGTH]
    text = BeautifulSoup(content, "html.parser").get_text(separator=" ")
    return _WHITESPACE.sub(" ", text).strip()


def prepare_article(entry: dict, index: int, max_tokens: int = DEFAULT_MAX_TOKENS) -> PreparedArticle:
    """Convert one Miniflux entry into a PreparedArticle."""
    feed = entry.get("feed") or {}
    category = feed.get("category") or {}
    feed_id = entry.get("feed_id")
    if feed_id is None:
        feed_id = feed.get("id")

    return PreparedArticle(
        index=index,
        title=entry.get("title") or "",
        feed_title=feed.get("title") or "",
        feed_id=feed_id,
        category_name=category.get("title") or "",
        published_at=entry.get("published_at"),
        url=entry.get("url"),
        summary=truncate_by_tokens(strip_html(entry.get("content")), max_tokens),
    )


async def prepare_articles(
    entries: list[dict],
    max_tokens: int = DEFAULT_MAX_TOKENS,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[PreparedArticle]:
    """
    Prepare entries in batches, yielding to the event loop between batches.

    Indexes are 1-based and follow the input order.
    """
    results: list[PreparedArticle] = []
    for start in range(0, len(entries), batch_size):
        batch = entries[start:start + batch_size]
        results.extend(
            prepare_article(entry, start + offset + 1, max_tokens)
            for offset, entry in enumerate(batch)
        )
        if start + batch_size < len(entries):
            await asyncio.sleep(0)
    return results
