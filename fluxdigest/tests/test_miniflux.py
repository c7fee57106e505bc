"""
Tests for the Miniflux client.
"""

import base64

import httpx
import pytest

from fluxdigest.exceptions import MinifluxError
from fluxdigest.miniflux import MinifluxClient, detect_auth_mode

NOW = 1_714_550_000.0


def make_client(handler, api_key="token-abc") -> MinifluxClient:
    return MinifluxClient(
        "https://miniflux.example.com/",
        api_key,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        clock=lambda: NOW,
    )


class TestDetectAuthMode:
    """Tests for the Basic-vs-token heuristic."""

    def test_basic_credentials(self):
        key = base64.b64encode(b"admin:secret").decode()
        assert detect_auth_mode(key) == "basic"

    def test_plain_token(self):
        assert detect_auth_mode("Zm9vYmFy-not-really") == "token"

    def test_encoded_uuid_is_token(self):
        key = base64.b64encode(b"x:123e4567-e89b-12d3-a456-426614174000").decode()
        assert detect_auth_mode(key) == "token"

    def test_empty(self):
        assert detect_auth_mode("") == "token"


class TestAuthHeaders:
    """Both credential shapes reach Miniflux in the right header."""

    @pytest.mark.asyncio
    async def test_token_header(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        await make_client(handler, "token-abc").get_feeds()
        assert seen[0].headers["X-Auth-Token"] == "token-abc"
        assert "Authorization" not in seen[0].headers
        assert str(seen[0].url) == "https://miniflux.example.com/v1/feeds"

    @pytest.mark.asyncio
    async def test_basic_header(self):
        seen = []
        key = base64.b64encode(b"admin:secret").decode()

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=[])

        await make_client(handler, key).get_feeds()
        assert seen[0].headers["Authorization"] == f"Basic {key}"
        assert "X-Auth-Token" not in seen[0].headers


class TestListRecentArticles:
    """Tests for entry queries."""

    @pytest.mark.asyncio
    async def test_all_scope_params(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"total": 1, "entries": [{"id": 1}]})

        entries = await make_client(handler).list_recent_articles(hours=24)

        assert entries == [{"id": 1}]
        params = seen[0].url.params
        assert seen[0].url.path == "/v1/entries"
        assert params["order"] == "published_at"
        assert params["direction"] == "desc"
        assert params["limit"] == "500"
        assert params["after"] == str(int(NOW - 24 * 3600))
        assert params["status"] == "unread"
        assert "feed_id" not in params

    @pytest.mark.asyncio
    async def test_feed_scope(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"entries": []})

        await make_client(handler).list_recent_articles(hours=12, feed_id=42, unread_only=False)

        params = seen[0].url.params
        assert params["feed_id"] == "42"
        assert "status" not in params

    @pytest.mark.asyncio
    async def test_group_scope_uses_category_endpoint(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"entries": []})

        await make_client(handler).list_recent_articles(group_id=7)
        assert seen[0].url.path == "/v1/categories/7/entries"

    @pytest.mark.asyncio
    async def test_zero_hours_has_no_lower_bound(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"entries": None})

        entries = await make_client(handler).list_recent_articles(hours=0)
        assert entries == []
        assert "after" not in seen[0].url.params

    @pytest.mark.asyncio
    async def test_error_status(self):
        def handler(request):
            return httpx.Response(401, text="Access Unauthorized")

        with pytest.raises(MinifluxError) as exc:
            await make_client(handler).list_recent_articles()
        assert str(exc.value) == "Miniflux API error: 401 - Access Unauthorized"
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_html_body_with_ok_status(self):
        def handler(request):
            return httpx.Response(200, text="<html>Sign in</html>")

        with pytest.raises(MinifluxError) as exc:
            await make_client(handler).list_recent_articles()
        assert str(exc.value) == "Miniflux API error: 200 - invalid JSON: <html>Sign in</html>"
        assert exc.value.status_code == 200


class TestCheckConnection:
    """Tests for the Miniflux connection check."""

    @pytest.mark.asyncio
    async def test_success(self):
        def handler(request):
            return httpx.Response(200, json=[{"id": 1}, {"id": 2}])

        assert await make_client(handler).check_connection() == {"success": True, "feed_count": 2}

    @pytest.mark.asyncio
    async def test_failure(self):
        def handler(request):
            return httpx.Response(500, text="boom")

        result = await make_client(handler).check_connection()
        assert result["success"] is False
        assert "500" in result["error"]

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        result = await make_client(handler).check_connection()
        assert result == {"success": False, "error": "connection refused"}

    @pytest.mark.asyncio
    async def test_html_login_page(self):
        def handler(request):
            return httpx.Response(200, text="<!DOCTYPE html><title>Miniflux</title>")

        result = await make_client(handler).check_connection()
        assert result["success"] is False
        assert "invalid JSON" in result["error"]
