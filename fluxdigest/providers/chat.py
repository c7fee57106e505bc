"""
HTTP exchange with LLM providers.

iter_chat yields canonical chat.completion.chunk dicts regardless of which
provider family produced them; stream_chat_sse re-frames those chunks as
Server-Sent Events for the chat proxy route.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import httpx

from ..exceptions import EmptyResponseError, ProviderError
from .base import ChatRequest, ProviderConfig, extract_text
from .factory import get_adapter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(60.0, read=300.0)

# SSE fields that carry no payload for us
_IGNORED_FIELDS = ("event:", "id:", "retry:", ":")


def extract_error_message(status_code: int, text: str) -> str:
    """Best-effort error message from a failed provider response."""
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if isinstance(error, str) and error:
            return error
        if data.get("message"):
            return data["message"]
    return text or f"HTTP {status_code}"


def _parse_line(line: str) -> dict | None:
    """Decode one line of a provider stream into a JSON payload."""
    line = line.strip()
    if not line or line.startswith(_IGNORED_FIELDS):
        return None
    if line.startswith("data:"):
        line = line[5:].strip()
    if line == "[DONE]":
        return None
    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        logger.debug(f"Skipping non-JSON stream line: {line[:80]}")
        return None
    return payload if isinstance(payload, dict) else None


def _stream_error(payload: dict) -> str | None:
    error = payload.get("error")
    if not error:
        return None
    if isinstance(error, dict):
        return error.get("message") or json.dumps(error)
    return str(error)


@asynccontextmanager
async def _client_scope(client: httpx.AsyncClient | None):
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT) as owned:
        yield owned


async def iter_chat(
    config: ProviderConfig,
    request: ChatRequest,
    client: httpx.AsyncClient | None = None,
) -> AsyncIterator[dict]:
    """
    Stream a chat completion as canonical chunks.

    Closing the iterator (or cancelling the task consuming it) aborts the
    upstream HTTP request.

    Raises:
        ProviderError: On non-2xx status or an error event inside the stream
    """
    adapter = get_adapter(config.provider)
    prepared = adapter.build_request(config, ChatRequest(
        model=request.model,
        messages=request.messages,
        stream=True,
        params=request.params,
    ))

    async with _client_scope(client) as http:
        async with http.stream(
            "POST", prepared.url, headers=prepared.headers, json=prepared.json
        ) as response:
            if response.status_code >= 400:
                body = (await response.aread()).decode("utf-8", errors="replace")
                message = extract_error_message(response.status_code, body)
                logger.warning(f"{config.provider} returned {response.status_code}: {message}")
                raise ProviderError(message, status_code=response.status_code)

            async for line in response.aiter_lines():
                payload = _parse_line(line)
                if payload is None:
                    continue
                error = _stream_error(payload)
                if error:
                    raise ProviderError(error)
                chunk = adapter.convert_to_openai_format(payload)
                if chunk is not None:
                    yield chunk


async def collect_chat(
    config: ProviderConfig,
    request: ChatRequest,
    client: httpx.AsyncClient | None = None,
) -> str:
    """
    Stream a completion and return the accumulated text.

    Raises:
        EmptyResponseError: If the stream finished without any text
    """
    pieces = []
    async for chunk in iter_chat(config, request, client=client):
        text = extract_text(chunk)
        if text:
            pieces.append(text)

    content = "".join(pieces)
    if not content:
        raise EmptyResponseError("AI returned an empty response")
    return content


async def stream_chat_sse(
    config: ProviderConfig,
    request: ChatRequest,
    client: httpx.AsyncClient | None = None,
) -> AsyncIterator[str]:
    """
    Yield SSE frames of canonical chunks, ending with a single [DONE] marker.

    A non-streaming request yields one chat.completion envelope instead.
    """
    try:
        if request.stream:
            async for chunk in iter_chat(config, request, client=client):
                yield f"data: {json.dumps(chunk, ensure_ascii=False)}\n\n"
        else:
            completion = await send_chat(config, request, client=client)
            yield f"data: {json.dumps(completion, ensure_ascii=False)}\n\n"
    except (ProviderError, httpx.HTTPError) as e:
        logger.error(f"Chat stream failed: {e}")
        yield f"data: {json.dumps({'error': str(e) or type(e).__name__}, ensure_ascii=False)}\n\n"
    yield "data: [DONE]\n\n"


async def send_chat(
    config: ProviderConfig,
    request: ChatRequest,
    client: httpx.AsyncClient | None = None,
) -> dict:
    """
    Send a non-streaming chat request.

    Returns:
        Canonical chat.completion envelope
    """
    adapter = get_adapter(config.provider)
    prepared = adapter.build_request(config, ChatRequest(
        model=request.model,
        messages=request.messages,
        stream=False,
        params=request.params,
    ))

    async with _client_scope(client) as http:
        response = await http.post(prepared.url, headers=prepared.headers, json=prepared.json)

    if response.status_code >= 400:
        raise ProviderError(
            extract_error_message(response.status_code, response.text),
            status_code=response.status_code,
        )
    try:
        payload = response.json()
    except ValueError:
        raise ProviderError(
            f"Invalid JSON from {config.provider} ({response.status_code}): {response.text[:200]}",
            status_code=response.status_code,
        )
    return adapter.convert_response(payload)


async def check_connection(
    config: ProviderConfig,
    client: httpx.AsyncClient | None = None,
) -> dict:
    """
    Send a tiny prompt to check credentials and endpoint.

    Returns:
        {"success": True, "message": ...} or {"success": False, "error": ...}
    """
    request = ChatRequest(
        model=config.model or "",
        messages=[{"role": "user", "content": "Hi"}],
        stream=False,
        params={"max_tokens": 10},
    )
    try:
        await send_chat(config, request, client=client)
    except ProviderError as e:
        return {"success": False, "error": str(e)}
    except httpx.HTTPError as e:
        logger.warning(f"Connection test to {config.provider} failed: {e}")
        return {"success": False, "error": str(e) or type(e).__name__}
    return {"success": True, "message": "Connection successful"}
