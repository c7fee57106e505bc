"""
LLM provider adapters.

Anthropic, Google and OpenAI-compatible endpoints are all normalized onto
the OpenAI chat-completion chunk shape.
"""

from .base import ChatRequest, ProviderAdapter, ProviderConfig, ProviderRequest, extract_text
from .anthropic import AnthropicAdapter
from .google import GoogleAdapter
from .openai import OpenAICompatibleAdapter, OpenRouterAdapter
from .factory import (
    PROVIDER_PRESETS,
    get_adapter,
    get_provider_list,
    get_provider_preset,
    validate_provider_config,
)
from .chat import (
    check_connection,
    collect_chat,
    extract_error_message,
    iter_chat,
    send_chat,
    stream_chat_sse,
)

__all__ = [
    "ChatRequest",
    "ProviderAdapter",
    "ProviderConfig",
    "ProviderRequest",
    "extract_text",
    "AnthropicAdapter",
    "GoogleAdapter",
    "OpenAICompatibleAdapter",
    "OpenRouterAdapter",
    "PROVIDER_PRESETS",
    "get_adapter",
    "get_provider_list",
    "get_provider_preset",
    "validate_provider_config",
    "collect_chat",
    "iter_chat",
    "send_chat",
    "stream_chat_sse",
    "check_connection",
    "extract_error_message",
]
