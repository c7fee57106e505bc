"""
Push service - deliver digests to chat webhooks.

Supports Discord, Telegram, WeCom, Feishu/Lark, DingTalk, Slack and generic
JSON webhooks. Content longer than the platform's message limit is split
into ordered chunks sent half a second apart.
"""

import asyncio
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

CHUNK_DELAY_SECONDS = 0.5
MIN_CHUNK_BUDGET = 100
OVERHEAD_CAP = 0.3

PLATFORM_LIMITS = {
    "discord": 2000,
    "telegram": 4096,
    "wecom": 4096,  # markdown messages
    "feishu": 30720,
    "dingtalk": 20000,
    "slack": 40000,
    "generic": 8000,
}

# Templates are JSON with {{title}} / {{digest_content}} placeholders; "\n"
# here is the two-character JSON escape, not a newline.
BODY_TEMPLATES = {
    "discord": r'{"content": "{{title}}\n\n{{digest_content}}"}',
    "telegram": r'{"chat_id": "YOUR_CHAT_ID", "text": "{{title}}\n\n{{digest_content}}", "parse_mode": "Markdown"}',
    "wecom": r'{"msgtype": "markdown", "markdown": {"content": "{{title}}\n\n{{digest_content}}"}}',
    "feishu": (
        '{"msg_type": "interactive", "card": {"elements": [{"tag": "markdown", '
        '"content": "{{digest_content}}"}], "header": {"title": {"tag": "plain_text", '
        '"content": "{{title}}"}}}}'
    ),
    "dingtalk": r'{"msgtype": "markdown", "markdown": {"title": "{{title}}", "text": "{{title}}\n\n{{digest_content}}"}}',
    "slack": r'{"text": "{{title}}\n\n{{digest_content}}"}',
    "generic": '{"title": "{{title}}", "content": "{{digest_content}}"}',
}

TEST_TITLE = "Flux Digest - Test Notification"
TEST_CONTENT = (
    "This is a test notification from Flux Digest.\n\n"
    "If you see this message, your push notification is configured correctly!"
)

_LINE_BREAKS = re.compile(r"[\r\n]+")


@dataclass
class PushResult:
    success: bool
    status: int | str | None = None
    error: str | None = None
    chunks: int = 0
    details: list[dict] = field(default_factory=list)


def detect_platform(url: str | None) -> str:
    """Guess the webhook platform from its URL."""
    lower = (url or "").lower()
    if "discord.com" in lower or "discordapp.com" in lower:
        return "discord"
    if "api.telegram.org" in lower:
        return "telegram"
    if "qyapi.weixin.qq.com" in lower:
        return "wecom"
    if "open.feishu.cn" in lower or "open.larksuite.com" in lower:
        return "feishu"
    if "oapi.dingtalk.com" in lower:
        return "dingtalk"
    if "slack.com" in lower:
        return "slack"
    return "generic"


def get_platform_limit(platform: str) -> int:
    return PLATFORM_LIMITS.get(platform, PLATFORM_LIMITS["generic"])


def split_text(text: str, max_len: int) -> list[str]:
    """
    Split text into pieces of at most max_len characters.

    Prefers paragraph boundaries, then line boundaries; a boundary in the
    first 30% of the window is ignored in favour of the next option, and a
    hard cut is the last resort. Newlines at the start of each remainder are
    dropped.
    """
    if len(text) <= max_len:
        return [text]

    chunks = []
    remaining = text
    floor = max_len * OVERHEAD_CAP
    while remaining:
        if len(remaining) <= max_len:
            chunks.append(remaining)
            break

        split_pos = remaining.rfind("\n\n", 0, max_len + 2)
        if split_pos < floor:
            split_pos = remaining.rfind("\n", 0, max_len + 1)
        if split_pos < floor:
            split_pos = max_len

        chunks.append(remaining[:split_pos])
        remaining = remaining[split_pos:].lstrip("\n")

    return chunks


def _json_escape(value: str) -> str:
    return json.dumps(value, ensure_ascii=False)[1:-1]


class PushService:
    """Sends digests to a configured webhook."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self._sleep = sleep

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=30.0) as client:
            return await client.request(method, url, **kwargs)

    def plan_chunks(self, template: str, title: str, content: str, platform: str) -> list[str]:
        """Split content so each rendered body stays within the platform limit."""
        limit = get_platform_limit(platform)
        if not content or len(content) <= limit:
            return [content]

        overhead = len(
            template.replace("{{title}}", title).replace("{{digest_content}}", "")
        )
        budget = int(limit - min(overhead, limit * OVERHEAD_CAP))
        if budget <= MIN_CHUNK_BUDGET:
            return [content]

        chunks = split_text(content, budget)
        logger.info(f"Content split into {len(chunks)} chunk(s) (limit: {limit})")
        return chunks

    async def _send_get(self, push_config: dict, title: str, content: str) -> PushResult:
        url = (
            push_config["url"]
            .replace("{{title}}", quote(title or "", safe=""))
            .replace("{{digest_content}}", quote(content or "", safe=""))
        )
        try:
            response = await self._request("GET", url)
        except httpx.HTTPError as e:
            logger.error(f"Push network error: {e}")
            return PushResult(success=False, status="ERR", error=str(e) or type(e).__name__, chunks=1)

        logger.info(f"GET push: {response.status_code}")
        if response.status_code >= 400:
            return PushResult(success=False, status=response.status_code, error=response.text, chunks=1)
        return PushResult(success=True, status=response.status_code, chunks=1)

    async def send(self, push_config: dict, title: str, content: str) -> PushResult:
        """
        Deliver a digest to the webhook in push_config.

        Args:
            push_config: {url, method, body, headers}; empty body picks the
                platform's default template
            title: Digest title
            content: Digest Markdown

        Returns:
            PushResult aggregated over all chunks
        """
        method = (push_config.get("method") or "POST").upper()
        platform = detect_platform(push_config.get("url"))
        logger.info(f"Sending notification via {platform} ({method})")

        if method == "GET":
            return await self._send_get(push_config, title, content)

        template = push_config.get("body") or ""
        if not template.strip():
            template = BODY_TEMPLATES.get(platform, BODY_TEMPLATES["generic"])
        template = _LINE_BREAKS.sub("", template)

        chunks = self.plan_chunks(template, title or "", content or "", platform)
        headers = {"Content-Type": "application/json", **(push_config.get("headers") or {})}
        total = len(chunks)
        details = []

        for i, chunk in enumerate(chunks):
            if i == 0:
                chunk_title = _json_escape(title or "")
            else:
                chunk_title = f" ({i + 1}/{total})"
            body = (
                template
                .replace("{{title}}", chunk_title)
                .replace("{{digest_content}}", _json_escape(chunk))
            )

            try:
                response = await self._request(
                    "POST", push_config["url"], headers=headers, content=body.encode("utf-8")
                )
            except httpx.HTTPError as e:
                logger.error(f"Network error on chunk {i + 1}/{total}: {e}")
                details.append({"success": False, "status": "ERR",
                                "error": str(e) or type(e).__name__, "chunk": i + 1})
            else:
                logger.info(f"Chunk {i + 1}/{total} sent: {response.status_code}")
                if response.status_code >= 400:
                    details.append({"success": False, "status": response.status_code,
                                    "error": response.text, "chunk": i + 1})
                else:
                    details.append({"success": True, "status": response.status_code, "chunk": i + 1})

            if i < total - 1:
                await self._sleep(CHUNK_DELAY_SECONDS)

        last = details[-1]
        success = all(detail["success"] for detail in details)
        return PushResult(
            success=success,
            status=last["status"],
            error=None if success else last.get("error"),
            chunks=total,
            details=details,
        )

    async def test(self, push_config: dict) -> PushResult:
        """Send a fixed test notification."""
        return await self.send(push_config, TEST_TITLE, TEST_CONTENT)
