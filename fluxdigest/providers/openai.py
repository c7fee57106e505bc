"""
OpenAI-compatible provider adapter.

Covers OpenAI itself and every vendor exposing the same
/chat/completions contract (DeepSeek, Moonshot, Zhipu, MiniMax,
SiliconFlow, OpenRouter, custom endpoints).
"""

from .base import ProviderAdapter, ProviderConfig, ChatRequest, ProviderRequest


class OpenAICompatibleAdapter(ProviderAdapter):
    """Bearer-token auth, request and response already in canonical shape."""

    @property
    def name(self) -> str:
        return "openai"

    def headers(self, api_key: str) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }

    def build_request(self, config: ProviderConfig, request: ChatRequest) -> ProviderRequest:
        body = {
            "model": request.model,
            "messages": self.map_messages(request.messages),
            "stream": request.stream,
            **request.params,
        }
        return ProviderRequest(
            url=f"{self.base_url(config.api_url)}/chat/completions",
            headers=self.headers(config.api_key),
            json=body,
        )

    def convert_to_openai_format(self, data: dict) -> dict | None:
        # Already in OpenAI format
        return data


class OpenRouterAdapter(OpenAICompatibleAdapter):
    """OpenRouter additionally wants app attribution headers."""

    def __init__(self, app_url: str, app_title: str = "Flux Digest"):
        self.app_url = app_url
        self.app_title = app_title

    @property
    def name(self) -> str:
        return "openrouter"

    def headers(self, api_key: str) -> dict[str, str]:
        return {
            **super().headers(api_key),
            "HTTP-Referer": self.app_url,
            "X-Title": self.app_title,
        }
