"""
Digest prompt composition.

Prompts are closed-world: the model is told to use only the supplied
article list, and custom templates always receive a content block that
repeats that instruction.
"""

from typing import Sequence

from .content import PreparedArticle

DEFAULT_TARGET_LANG = "Simplified Chinese"

_CONSTRAINTS = """## CRITICAL CONSTRAINT:
- Use ONLY information from the article list below. Do not add any facts, events, or details from your training data or external knowledge.
- Every claim in your digest must be traceable to one of the listed articles. If something is not in the list, do not include it.

## Output Requirements:
1. Output in {target_lang}
2. Start with a 2-3 sentence overview of the key content from these articles only
3. Categorize by topic or importance, listing key information in concise bullet points
4. If multiple articles relate to the same topic, combine them
5. Keep the format concise and compact, using Markdown
6. Output the content directly, no opening remarks like "Here is the digest\""""

DEFAULT_PROMPT_TEMPLATE = (
    "You are a professional news editor. Generate a concise digest based ONLY on "
    "the following list of recent articles.\n\n"
    + _CONSTRAINTS.format(target_lang="{{targetLang}}")
    + "\n\n{{content}}"
)


def migrate_prompt_template(custom_prompt: str) -> str:
    """
    Upgrade legacy single-brace placeholders and make sure {{content}} exists.
    """
    if "{content}" in custom_prompt and "{{content}}" not in custom_prompt:
        custom_prompt = custom_prompt.replace("{content}", "{{content}}")
    if "{targetLang}" in custom_prompt and "{{targetLang}}" not in custom_prompt:
        custom_prompt = custom_prompt.replace("{targetLang}", "{{targetLang}}")
    if "{{content}}" not in custom_prompt:
        custom_prompt = custom_prompt.strip() + "\n\n{{content}}"
    return custom_prompt


def format_article(article: PreparedArticle) -> str:
    lines = [
        f"### {article.index}. {article.title}",
        f"- Source: {article.feed_title}",
    ]
    if article.category_name:
        lines.append(f"- Category: {article.category_name}")
    lines.append(f"- Date: {article.published_at}")
    if article.url:
        lines.append(f"- Link: {article.url}")
    lines.append(f"- Summary: {article.summary}")
    return "\n".join(lines) + "\n"


def format_article_list(articles: Sequence[PreparedArticle]) -> str:
    return "\n".join(format_article(article) for article in articles)


def build_content_block(articles: Sequence[PreparedArticle]) -> str:
    """The article list as substituted for {{content}} in custom templates."""
    return (
        "## CRITICAL: Use ONLY the information from the article list below. "
        "Do not add any facts or details from outside these articles.\n\n"
        f"## Article List (Total {len(articles)} articles):\n\n"
        f"{format_article_list(articles)}"
    )


def build_digest_prompt(
    articles: Sequence[PreparedArticle],
    target_lang: str = DEFAULT_TARGET_LANG,
    scope_name: str = "subscription",
    custom_prompt: str | None = None,
) -> str:
    """
    Compose the prompt for one digest.

    Args:
        articles: Prepared articles in display order
        target_lang: Language the digest should be written in
        scope_name: Human-readable scope, named in the default prompt
        custom_prompt: Optional user template with {{targetLang}}/{{content}}

    Returns:
        The full prompt text
    """
    if custom_prompt and custom_prompt.strip():
        template = migrate_prompt_template(custom_prompt)
        return (
            template
            .replace("{{targetLang}}", target_lang)
            .replace("{{content}}", build_content_block(articles))
        )

    return (
        "You are a professional news editor. Generate a concise digest based ONLY on "
        f"the following list of recent {scope_name} articles.\n\n"
        + _CONSTRAINTS.format(target_lang=target_lang)
        + f"\n\n## Article List (Total {len(articles)} articles):\n\n"
        + format_article_list(articles)
    )
