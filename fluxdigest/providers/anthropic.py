"""
Anthropic Messages API adapter.

Streams arrive as typed events (message_start, content_block_delta,
message_stop, ...); only text deltas and the stop event are forwarded.
"""

from .base import (
    ProviderAdapter,
    ProviderConfig,
    ChatRequest,
    ProviderRequest,
    make_chunk,
    make_completion,
)

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 4096


class AnthropicAdapter(ProviderAdapter):
    """x-api-key auth; system turns are sent as user turns."""

    supports_system_role = False

    @property
    def name(self) -> str:
        return "anthropic"

    def build_request(self, config: ProviderConfig, request: ChatRequest) -> ProviderRequest:
        params = dict(request.params)
        body = {
            "model": request.model,
            "messages": self.map_messages(request.messages),
            "max_tokens": params.pop("max_tokens", None) or DEFAULT_MAX_TOKENS,
            "stream": request.stream,
        }
        if params.get("temperature") is not None:
            body["temperature"] = params["temperature"]

        return ProviderRequest(
            url=f"{self.base_url(config.api_url)}/messages",
            headers={
                "Content-Type": "application/json",
                "x-api-key": config.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            json=body,
        )

    def convert_to_openai_format(self, data: dict) -> dict | None:
        event_type = data.get("type")
        if event_type == "content_block_delta":
            delta = data.get("delta") or {}
            return make_chunk(
                delta.get("text") or "",
                model=data.get("model") or "claude",
                chunk_id=data.get("id") or "chatcmpl-anthropic",
            )
        if event_type == "message_stop":
            return make_chunk(None, finish_reason="stop", model="claude",
                              chunk_id="chatcmpl-anthropic")
        return None

    def convert_response(self, data: dict) -> dict:
        text = "".join(
            block.get("text", "")
            for block in data.get("content") or []
            if block.get("type") == "text"
        )
        return make_completion(
            text,
            model=data.get("model") or "claude",
            completion_id=data.get("id") or "chatcmpl-anthropic",
        )
