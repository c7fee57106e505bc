"""
Google Gemini (Generative Language API) adapter.

The API key travels in the query string; streaming uses alt=sse so the
response is line-delimited like the other providers.
"""

from urllib.parse import quote

from .base import (
    ProviderAdapter,
    ProviderConfig,
    ChatRequest,
    ProviderRequest,
    make_chunk,
    make_completion,
)

DEFAULT_MAX_OUTPUT_TOKENS = 8192


def _candidate_text(candidate: dict) -> str:
    parts = (candidate.get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts)


class GoogleAdapter(ProviderAdapter):
    """Query-string key auth; contents/parts body shape."""

    supports_system_role = False

    @property
    def name(self) -> str:
        return "google"

    def build_request(self, config: ProviderConfig, request: ChatRequest) -> ProviderRequest:
        base = self.base_url(config.api_url)
        key = quote(config.api_key, safe="")
        if request.stream:
            url = f"{base}/models/{request.model}:streamGenerateContent?key={key}&alt=sse"
        else:
            url = f"{base}/models/{request.model}:generateContent?key={key}"

        generation_config = {
            "maxOutputTokens": request.params.get("max_tokens") or DEFAULT_MAX_OUTPUT_TOKENS,
        }
        if request.params.get("temperature") is not None:
            generation_config["temperature"] = request.params["temperature"]

        body = {
            "contents": [
                {
                    "role": "model" if message.get("role") == "assistant" else "user",
                    "parts": [{"text": message.get("content", "")}],
                }
                for message in request.messages
            ],
            "generationConfig": generation_config,
        }
        return ProviderRequest(
            url=url,
            headers={"Content-Type": "application/json"},
            json=body,
        )

    def convert_to_openai_format(self, data: dict) -> dict | None:
        candidates = data.get("candidates")
        if not candidates:
            return None
        candidate = candidates[0]
        return make_chunk(
            _candidate_text(candidate),
            finish_reason="stop" if candidate.get("finishReason") == "STOP" else None,
            model="gemini",
            chunk_id="chatcmpl-google",
        )

    def convert_response(self, data: dict) -> dict:
        candidates = data.get("candidates") or [{}]
        return make_completion(
            _candidate_text(candidates[0]),
            model="gemini",
            completion_id="chatcmpl-google",
        )
