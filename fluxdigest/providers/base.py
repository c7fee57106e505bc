"""
Base provider adapter interface.

Every provider family turns the same ChatRequest into its own HTTP request
and maps its own response events back onto the OpenAI chat-completion
chunk shape, so consumers need a single parser.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass
class ProviderConfig:
    """Decrypted connection settings for one provider."""
    provider: str
    api_url: str
    api_key: str
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class ChatRequest:
    """Provider-independent chat request."""
    model: str
    messages: list[dict]
    stream: bool = True
    params: dict = field(default_factory=dict)  # temperature, max_tokens, ...


@dataclass
class ProviderRequest:
    """A fully shaped HTTP request for one provider."""
    url: str
    headers: dict[str, str]
    json: dict


def make_chunk(
    content: str | None,
    finish_reason: str | None = None,
    model: str = "",
    chunk_id: str = "chatcmpl",
) -> dict:
    """Build a canonical chat.completion.chunk event."""
    delta = {"content": content} if content is not None else {}
    return {
        "id": chunk_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [{
            "index": 0,
            "delta": delta,
            "finish_reason": finish_reason,
        }],
    }


def make_completion(content: str, model: str = "", completion_id: str = "chatcmpl") -> dict:
    """Build a canonical non-streaming chat.completion envelope."""
    return {
        "id": completion_id,
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
    }


def extract_text(payload: dict) -> str:
    """Pull the text out of a canonical chunk or completion."""
    choices = payload.get("choices") or []
    if choices:
        choice = choices[0] or {}
        delta = choice.get("delta") or {}
        message = choice.get("message") or {}
        return delta.get("content") or message.get("content") or ""
    return payload.get("content") or ""


class ProviderAdapter(ABC):
    """
    Abstract base class for provider families.

    Subclasses implement request shaping and response normalization; the
    HTTP exchange itself lives in providers.chat.
    """

    # Providers without a native system role get system turns sent as user
    supports_system_role: bool = True

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the adapter family name (e.g. 'openai', 'anthropic', 'google')."""
        pass

    @abstractmethod
    def build_request(self, config: ProviderConfig, request: ChatRequest) -> ProviderRequest:
        """
        Shape the endpoint URL, auth headers and body for this provider.

        Args:
            config: Decrypted provider settings (base URL, key)
            request: The provider-independent chat request

        Returns:
            ProviderRequest ready to POST
        """
        pass

    @abstractmethod
    def convert_to_openai_format(self, data: dict) -> dict | None:
        """
        Map one native streaming event onto a canonical chunk.

        Returns None for events that carry nothing for the consumer.
        """
        pass

    def convert_response(self, data: dict) -> dict:
        """Map a native non-streaming response onto a canonical completion."""
        return data

    def map_messages(self, messages: list[dict]) -> list[dict]:
        """Remap roles the provider does not understand."""
        if self.supports_system_role:
            return list(messages)
        return [
            {**message, "role": "user"} if message.get("role") == "system" else message
            for message in messages
        ]

    @staticmethod
    def base_url(api_url: str) -> str:
        return api_url.rstrip("/")
