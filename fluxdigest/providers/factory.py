"""
Provider presets and adapter selection.

A provider id (e.g. 'deepseek') picks both the preset shown in the UI and the
adapter family used on the wire; everything not Anthropic or Google speaks
the OpenAI-compatible protocol.
"""

from ..config import config
from .base import ProviderAdapter
from .anthropic import AnthropicAdapter
from .google import GoogleAdapter
from .openai import OpenAICompatibleAdapter, OpenRouterAdapter

PROVIDER_PRESETS: dict[str, dict] = {
    "openai": {
        "name": "OpenAI",
        "api_url": "https://api.openai.com/v1",
        "default_model": "gpt-4o",
        "models": ["gpt-4o", "gpt-4o-mini", "gpt-4-turbo", "gpt-3.5-turbo"],
    },
    "anthropic": {
        "name": "Anthropic",
        "api_url": "https://api.anthropic.com/v1",
        "default_model": "claude-sonnet-4-20250514",
        "models": [
            "claude-opus-4-20250514",
            "claude-sonnet-4-20250514",
            "claude-3-5-sonnet-20241022",
            "claude-3-5-haiku-20241022",
        ],
    },
    "zhipu": {
        "name": "智谱（国内）",
        "api_url": "https://open.bigmodel.cn/api/paas/v4",
        "default_model": "glm-4-plus",
        "models": ["glm-4-plus", "glm-4-0520", "glm-4-air", "glm-4-airx", "glm-4-flash"],
    },
    "zhipu_intl": {
        "name": "智谱（国外）",
        "api_url": "https://open.bigmodel.cn/api/paas/v4",
        "default_model": "glm-4-plus",
        "models": ["glm-4-plus", "glm-4-0520", "glm-4-air", "glm-4-airx", "glm-4-flash"],
    },
    "minimax": {
        "name": "Minimax（国内）",
        "api_url": "https://api.minimax.chat/v1",
        "default_model": "abab6.5s-chat",
        "models": ["abab6.5s-chat", "abab6.5g-chat", "abab6.5t-chat", "abab5.5-chat"],
    },
    "minimax_intl": {
        "name": "Minimax（国外）",
        "api_url": "https://api.minimax.chat/v1",
        "default_model": "abab6.5s-chat",
        "models": ["abab6.5s-chat", "abab6.5g-chat", "abab6.5t-chat", "abab5.5-chat"],
    },
    "google": {
        "name": "Google",
        "api_url": "https://generativelanguage.googleapis.com/v1beta",
        "default_model": "gemini-1.5-pro",
        "models": ["gemini-1.5-pro", "gemini-1.5-flash", "gemini-1.0-pro"],
    },
    "deepseek": {
        "name": "DeepSeek",
        "api_url": "https://api.deepseek.com/v1",
        "default_model": "deepseek-chat",
        "models": ["deepseek-chat", "deepseek-coder", "deepseek-reasoner"],
    },
    "moonshot": {
        "name": "月之暗面",
        "api_url": "https://api.moonshot.cn/v1",
        "default_model": "moonshot-v1-8k",
        "models": ["moonshot-v1-8k", "moonshot-v1-32k", "moonshot-v1-128k"],
    },
    "openrouter": {
        "name": "OpenRouter",
        "api_url": "https://openrouter.ai/api/v1",
        "default_model": "anthropic/claude-sonnet-4",
        "models": [
            "anthropic/claude-sonnet-4",
            "anthropic/claude-opus-4",
            "openai/gpt-4o",
            "google/gemini-pro-1.5",
        ],
    },
    "siliconflow": {
        "name": "硅基流动",
        "api_url": "https://api.siliconflow.cn/v1",
        "default_model": "Qwen/Qwen2.5-72B-Instruct",
        "models": [
            "Qwen/Qwen2.5-72B-Instruct",
            "Qwen/Qwen2.5-32B-Instruct",
            "deepseek-ai/DeepSeek-V2.5",
        ],
    },
    "custom": {
        "name": "自定义",
        "api_url": "",
        "default_model": "",
        "models": [],
    },
}


def get_provider_preset(provider_id: str) -> dict | None:
    """Return the preset for a provider id, or None if unknown."""
    return PROVIDER_PRESETS.get(provider_id)


def get_provider_list() -> list[dict]:
    """Return presets as a list for UI display."""
    return [{"id": provider_id, **preset} for provider_id, preset in PROVIDER_PRESETS.items()]


def validate_provider_config(provider: str | None, api_url: str | None, api_key: str | None) -> list[str]:
    """
    Validate a provider configuration.

    Returns:
        List of error messages, empty when valid
    """
    errors = []
    if not provider:
        errors.append("Provider is required")
    elif provider not in PROVIDER_PRESETS:
        errors.append(f"Unknown provider: {provider}")
    if not api_url:
        errors.append("API URL is required")
    if not api_key:
        errors.append("API Key is required")
    return errors


def get_adapter(provider: str) -> ProviderAdapter:
    """
    Pick the adapter family for a provider id.

    Args:
        provider: Provider id from PROVIDER_PRESETS (unknown ids are treated
            as OpenAI-compatible custom endpoints)

    Returns:
        ProviderAdapter for the provider's wire protocol
    """
    provider = (provider or "").lower()
    if provider == "anthropic":
        return AnthropicAdapter()
    elif provider == "google":
        return GoogleAdapter()
    elif provider == "openrouter":
        return OpenRouterAdapter(app_url=config.APP_URL)
    return OpenAICompatibleAdapter()
