"""
Tests for provider adapters and the chat HTTP exchange.

Outbound calls go through httpx.MockTransport; no API keys are needed.
"""

import json

import httpx
import pytest

from fluxdigest.exceptions import EmptyResponseError, ProviderError
from fluxdigest.providers import (
    AnthropicAdapter,
    ChatRequest,
    GoogleAdapter,
    OpenAICompatibleAdapter,
    ProviderConfig,
    check_connection,
    collect_chat,
    extract_error_message,
    get_adapter,
    get_provider_list,
    iter_chat,
    send_chat,
    stream_chat_sse,
    validate_provider_config,
)
from fluxdigest.providers.openai import OpenRouterAdapter


def sse(*events) -> bytes:
    """Encode payloads as an SSE body."""
    lines = []
    for event in events:
        data = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {data}\n\n")
    return "".join(lines).encode()


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


OPENAI_EVENTS = [
    {"id": "1", "object": "chat.completion.chunk", "choices": [{"index": 0, "delta": {"content": "A"}}]},
    {"id": "1", "object": "chat.completion.chunk", "choices": [{"index": 0, "delta": {"content": "B"}}]},
    {"id": "1", "object": "chat.completion.chunk", "choices": [{"index": 0, "delta": {"content": "C"}}]},
    "[DONE]",
]

ANTHROPIC_EVENTS = [
    {"type": "message_start", "message": {"id": "msg_1"}},
    {"type": "content_block_start", "index": 0},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "A"}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "B"}},
    {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": "C"}},
    {"type": "message_stop"},
]

GOOGLE_EVENTS = [
    {"candidates": [{"content": {"parts": [{"text": "A"}], "role": "model"}}]},
    {"candidates": [{"content": {"parts": [{"text": "B"}], "role": "model"}}]},
    {"candidates": [{"content": {"parts": [{"text": "C"}], "role": "model"}, "finishReason": "STOP"}]},
]

CASES = [
    ("openai", "https://api.openai.com/v1", OPENAI_EVENTS),
    ("anthropic", "https://api.anthropic.com/v1", ANTHROPIC_EVENTS),
    ("google", "https://generativelanguage.googleapis.com/v1beta", GOOGLE_EVENTS),
]


def make_config(provider: str, api_url: str) -> ProviderConfig:
    return ProviderConfig(provider=provider, api_url=api_url, api_key="key-123", model="m-1")


def make_request(**params) -> ChatRequest:
    return ChatRequest(
        model="m-1",
        messages=[
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Hi"},
        ],
        params=params,
    )


class TestRequestShaping:
    """Tests for per-provider URL, headers and body."""

    def test_openai(self):
        req = OpenAICompatibleAdapter().build_request(
            make_config("deepseek", "https://api.deepseek.com/v1/"), make_request(temperature=0.2)
        )
        assert req.url == "https://api.deepseek.com/v1/chat/completions"
        assert req.headers["Authorization"] == "Bearer key-123"
        assert req.json["stream"] is True
        assert req.json["temperature"] == 0.2
        assert req.json["messages"][0]["role"] == "system"

    def test_openrouter_attribution_headers(self):
        req = OpenRouterAdapter(app_url="https://app.example.com").build_request(
            make_config("openrouter", "https://openrouter.ai/api/v1"), make_request()
        )
        assert req.headers["HTTP-Referer"] == "https://app.example.com"
        assert req.headers["X-Title"] == "Flux Digest"

    def test_anthropic(self):
        req = AnthropicAdapter().build_request(
            make_config("anthropic", "https://api.anthropic.com/v1"), make_request()
        )
        assert req.url == "https://api.anthropic.com/v1/messages"
        assert req.headers["x-api-key"] == "key-123"
        assert req.headers["anthropic-version"] == "2023-06-01"
        assert req.json["max_tokens"] == 4096
        assert "temperature" not in req.json
        # No system role: system turns are sent as user turns
        assert [m["role"] for m in req.json["messages"]] == ["user", "user"]

    def test_google_streaming_url(self):
        req = GoogleAdapter().build_request(
            make_config("google", "https://generativelanguage.googleapis.com/v1beta"),
            make_request(temperature=0.5, max_tokens=100),
        )
        assert req.url == (
            "https://generativelanguage.googleapis.com/v1beta/models/m-1"
            ":streamGenerateContent?key=key-123&alt=sse"
        )
        assert req.json["contents"][1] == {"role": "user", "parts": [{"text": "Hi"}]}
        assert req.json["generationConfig"] == {"maxOutputTokens": 100, "temperature": 0.5}

    def test_google_non_streaming_url(self):
        request = make_request()
        request.stream = False
        req = GoogleAdapter().build_request(
            make_config("google", "https://generativelanguage.googleapis.com/v1beta"), request
        )
        assert req.url.endswith("/models/m-1:generateContent?key=key-123")

    def test_adapter_selection(self):
        assert get_adapter("anthropic").name == "anthropic"
        assert get_adapter("google").name == "google"
        assert get_adapter("openrouter").name == "openrouter"
        assert get_adapter("moonshot").name == "openai"
        assert get_adapter("custom").name == "openai"


class TestNormalization:
    """Every adapter maps its events onto the same canonical chunk shape."""

    @pytest.mark.parametrize("provider,api_url,events", CASES)
    def test_same_text_deltas(self, provider, api_url, events):
        adapter = get_adapter(provider)
        texts = []
        for event in events:
            if isinstance(event, str):
                continue
            chunk = adapter.convert_to_openai_format(event)
            if chunk is None:
                continue
            assert chunk["object"] == "chat.completion.chunk"
            content = chunk["choices"][0]["delta"].get("content")
            if content:
                texts.append(content)
        assert texts == ["A", "B", "C"]

    def test_anthropic_ignores_bookkeeping_events(self):
        adapter = AnthropicAdapter()
        assert adapter.convert_to_openai_format({"type": "message_start"}) is None
        stop = adapter.convert_to_openai_format({"type": "message_stop"})
        assert stop["choices"][0] == {"index": 0, "delta": {}, "finish_reason": "stop"}

    def test_google_finish_reason(self):
        chunk = GoogleAdapter().convert_to_openai_format(GOOGLE_EVENTS[-1])
        assert chunk["choices"][0]["finish_reason"] == "stop"

    def test_anthropic_non_streaming_response(self):
        completion = AnthropicAdapter().convert_response({
            "id": "msg_1",
            "content": [{"type": "text", "text": "Hel"}, {"type": "text", "text": "lo"}],
        })
        assert completion["choices"][0]["message"]["content"] == "Hello"


class TestIterChat:
    """Tests for the streamed exchange."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider,api_url,events", CASES)
    async def test_collect_reassembles_stream(self, provider, api_url, events):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=sse(*events))

        async with mock_client(handler) as client:
            text = await collect_chat(make_config(provider, api_url), make_request(), client=client)

        assert text == "ABC"
        assert len(seen) == 1
        assert str(seen[0].url).startswith(api_url)

    @pytest.mark.asyncio
    async def test_error_status_raises_with_message(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "Invalid API key"}})

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError) as exc:
                async for _ in iter_chat(make_config("openai", "https://x/v1"), make_request(), client=client):
                    pass

        assert str(exc.value) == "Invalid API key"
        assert exc.value.status_code == 401

    @pytest.mark.asyncio
    async def test_error_event_in_stream_raises(self):
        def handler(request):
            return httpx.Response(200, content=sse({"error": {"message": "overloaded"}}))

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError, match="overloaded"):
                await collect_chat(make_config("openai", "https://x/v1"), make_request(), client=client)

    @pytest.mark.asyncio
    async def test_empty_stream_raises(self):
        def handler(request):
            return httpx.Response(200, content=sse("[DONE]"))

        async with mock_client(handler) as client:
            with pytest.raises(EmptyResponseError):
                await collect_chat(make_config("openai", "https://x/v1"), make_request(), client=client)

    @pytest.mark.asyncio
    async def test_sse_frames_end_with_single_done(self):
        def handler(request):
            return httpx.Response(200, content=sse(*ANTHROPIC_EVENTS))

        async with mock_client(handler) as client:
            frames = [
                frame async for frame in stream_chat_sse(
                    make_config("anthropic", "https://api.anthropic.com/v1"), make_request(), client=client
                )
            ]

        assert frames[-1] == "data: [DONE]\n\n"
        assert sum(1 for f in frames if "[DONE]" in f) == 1
        payloads = [json.loads(f[len("data: "):]) for f in frames[:-1]]
        assert "".join(p["choices"][0]["delta"].get("content", "") for p in payloads) == "ABC"

    @pytest.mark.asyncio
    async def test_sse_reports_upstream_error(self):
        def handler(request):
            return httpx.Response(500, text="upstream broke")

        async with mock_client(handler) as client:
            frames = [
                frame async for frame in stream_chat_sse(
                    make_config("openai", "https://x/v1"), make_request(), client=client
                )
            ]

        assert json.loads(frames[0][len("data: "):]) == {"error": "upstream broke"}
        assert frames[-1] == "data: [DONE]\n\n"

    @pytest.mark.asyncio
    async def test_sse_non_streaming_envelope(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={
                "id": "cmpl-1",
                "object": "chat.completion",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hello"}}],
            })

        request = make_request()
        request.stream = False
        async with mock_client(handler) as client:
            frames = [
                frame async for frame in stream_chat_sse(
                    make_config("openai", "https://x/v1"), request, client=client
                )
            ]

        assert bodies[0]["stream"] is False
        assert len(frames) == 2
        assert json.loads(frames[0][len("data: "):])["choices"][0]["message"]["content"] == "Hello"
        assert frames[1] == "data: [DONE]\n\n"

    @pytest.mark.asyncio
    async def test_sse_html_body_reports_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>Captive portal</html>")

        request = make_request()
        request.stream = False
        async with mock_client(handler) as client:
            frames = [
                frame async for frame in stream_chat_sse(
                    make_config("openai", "https://x/v1"), request, client=client
                )
            ]

        assert len(frames) == 2
        error = json.loads(frames[0][len("data: "):])["error"]
        assert "Invalid JSON" in error
        assert "Captive portal" in error
        assert frames[1] == "data: [DONE]\n\n"


class TestCheckConnection:
    """Tests for the provider connection check."""

    @pytest.mark.asyncio
    async def test_success(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"choices": [{"message": {"content": "Hello"}}]})

        async with mock_client(handler) as client:
            result = await check_connection(make_config("openai", "https://x/v1"), client=client)

        assert result == {"success": True, "message": "Connection successful"}
        assert bodies[0]["stream"] is False
        assert bodies[0]["max_tokens"] == 10

    @pytest.mark.asyncio
    async def test_failure(self):
        def handler(request):
            return httpx.Response(403, json={"message": "Forbidden"})

        async with mock_client(handler) as client:
            result = await check_connection(make_config("openai", "https://x/v1"), client=client)

        assert result == {"success": False, "error": "Forbidden"}

    @pytest.mark.asyncio
    async def test_html_body_with_ok_status(self):
        def handler(request):
            return httpx.Response(200, text="<html>welcome</html>")

        async with mock_client(handler) as client:
            result = await check_connection(make_config("openai", "https://x/v1"), client=client)

        assert result["success"] is False
        assert result["error"] == "Invalid JSON from openai (200): <html>welcome</html>"

    @pytest.mark.asyncio
    async def test_send_chat_html_body_raises_provider_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>welcome</html>")

        async with mock_client(handler) as client:
            with pytest.raises(ProviderError) as exc_info:
                await send_chat(make_config("openai", "https://x/v1"), make_request(), client=client)

        assert exc_info.value.status_code == 200


class TestExtractErrorMessage:
    """Tests for error message extraction."""

    def test_nested_error_message(self):
        assert extract_error_message(400, '{"error": {"message": "bad model"}}') == "bad model"

    def test_string_error(self):
        assert extract_error_message(400, '{"error": "quota exceeded"}') == "quota exceeded"

    def test_top_level_message(self):
        assert extract_error_message(400, '{"message": "nope"}') == "nope"

    def test_raw_text(self):
        assert extract_error_message(502, "Bad Gateway") == "Bad Gateway"

    def test_empty_body(self):
        assert extract_error_message(503, "") == "HTTP 503"


class TestPresets:
    """Tests for provider presets and validation."""

    def test_provider_list_has_ids(self):
        providers = {p["id"]: p for p in get_provider_list()}
        assert providers["openai"]["api_url"] == "https://api.openai.com/v1"
        assert "anthropic" in providers
        assert "google" in providers

    def test_validate(self):
        assert validate_provider_config("openai", "https://x", "k") == []
        errors = validate_provider_config("nope", None, None)
        assert "Unknown provider: nope" in errors
        assert "API URL is required" in errors
        assert "API Key is required" in errors
