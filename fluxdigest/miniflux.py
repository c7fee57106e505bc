"""
Miniflux REST API client.

Only the read side needed for digests: recent entries, feed and category
lookups for display names, and a connection check.
"""

import base64
import binascii
import logging
import re
import time
from typing import Callable

import httpx

from .exceptions import MinifluxError

logger = logging.getLogger(__name__)

DEFAULT_ENTRY_LIMIT = 500

_UUID_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", re.IGNORECASE
)


def detect_auth_mode(api_key: str | None) -> str:
    """
    Guess whether a stored key is a Basic credential or an API token.

    A key that base64-decodes to "user:password" (no UUID inside) is sent as
    Basic auth; anything else goes in X-Auth-Token.

    Returns:
        "basic" or "token"
    """
    if not api_key:
        return "token"
    try:
        decoded = base64.b64decode(api_key, validate=False).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return "token"
    if ":" in decoded and not _UUID_PATTERN.search(decoded):
        return "basic"
    return "token"


class MinifluxClient:
    """Async client for one Miniflux instance."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.base_url = (api_url or "").rstrip("/")
        self.api_key = api_key
        self.auth_mode = detect_auth_mode(api_key)
        self._client = client
        self._clock = clock

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_mode == "basic":
            headers["Authorization"] = f"Basic {self.api_key}"
        else:
            headers["X-Auth-Token"] = self.api_key
        return headers

    async def _get(self, endpoint: str, params: dict | None = None):
        url = f"{self.base_url}/v1{endpoint}"
        if self._client is not None:
            response = await self._client.get(url, headers=self._headers(), params=params)
        else:
            async with httpx.AsyncClient(timeout=30.0) as client:
                response = await client.get(url, headers=self._headers(), params=params)

        if response.status_code >= 400:
            raise MinifluxError(
                f"Miniflux API error: {response.status_code} - {response.text}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError:
            raise MinifluxError(
                f"Miniflux API error: {response.status_code} - invalid JSON: {response.text[:200]}",
                status_code=response.status_code,
            )

    async def get_feeds(self) -> list[dict]:
        return await self._get("/feeds")

    async def get_categories(self) -> list[dict]:
        return await self._get("/categories")

    async def get_feed(self, feed_id: int) -> dict:
        return await self._get(f"/feeds/{feed_id}")

    async def list_recent_articles(
        self,
        hours: int = 24,
        feed_id: int | None = None,
        group_id: int | None = None,
        unread_only: bool = True,
        limit: int = DEFAULT_ENTRY_LIMIT,
    ) -> list[dict]:
        """
        Fetch entries in the time window, most recent first.

        Args:
            hours: Look-back window; 0 means no lower bound
            feed_id: Restrict to one feed
            group_id: Restrict to one category (takes precedence over feed_id)
            unread_only: Only unread entries
            limit: Maximum entries returned by the server

        Returns:
            List of Miniflux entry dicts
        """
        params: dict = {
            "order": "published_at",
            "direction": "desc",
            "limit": limit,
        }
        if hours and hours > 0:
            params["after"] = int(self._clock() - hours * 3600)
        if unread_only:
            params["status"] = "unread"

        logger.info(
            f"Fetching articles: hours={hours}, feed_id={feed_id or 'none'}, "
            f"group_id={group_id or 'none'}, unread_only={unread_only}"
        )

        if group_id:
            response = await self._get(f"/categories/{int(group_id)}/entries", params)
        else:
            if feed_id:
                params["feed_id"] = int(feed_id)
            response = await self._get("/entries", params)

        return (response or {}).get("entries") or []

    async def check_connection(self) -> dict:
        """Fetch the feed list to verify URL and credentials."""
        try:
            feeds = await self.get_feeds()
        except MinifluxError as e:
            return {"success": False, "error": str(e)}
        except httpx.HTTPError as e:
            logger.warning(f"Miniflux connection test failed: {e}")
            return {"success": False, "error": str(e) or type(e).__name__}
        return {"success": True, "feed_count": len(feeds or [])}
