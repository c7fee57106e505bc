"""
AI provider routes: presets, stored configs, connection test and chat proxy.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ..auth import verify_api_key
from ..config import get_db, get_vault
from ..database import Database
from ..exceptions import DigestError, require_resource, to_http_exception
from ..providers import (
    ChatRequest,
    ProviderConfig,
    check_connection,
    get_provider_list,
    get_provider_preset,
    stream_chat_sse,
    validate_provider_config,
)
from ..schemas import (
    AIConfigRequest,
    AIConfigResponse,
    AITestRequest,
    ChatProxyRequest,
    ConnectionTestResponse,
    ProviderPresetResponse,
)
from ..services import DigestServiceDep
from ..vault import CredentialVault

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/ai",
    tags=["ai"],
    dependencies=[Depends(verify_api_key)]
)


def _decrypt(vault: CredentialVault, token: str | None) -> str | None:
    try:
        return vault.decrypt(token)
    except DigestError as e:
        raise to_http_exception(e)


@router.get("/providers")
async def list_providers() -> list[ProviderPresetResponse]:
    """Provider presets for the settings UI."""
    return [ProviderPresetResponse(**preset) for preset in get_provider_list()]


# ─────────────────────────────────────────────────────────────
# Stored Configs
# ─────────────────────────────────────────────────────────────

@router.get("/config")
async def get_active_config(
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[CredentialVault, Depends(get_vault)],
) -> AIConfigResponse | None:
    """The active provider config, or null when none is set up."""
    row = db.configs.get_active_ai_config()
    if row is None:
        return None
    return AIConfigResponse.from_db(row, _decrypt(vault, row.api_key_encrypted))


@router.post("/config")
async def save_config(
    request: AIConfigRequest,
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[CredentialVault, Depends(get_vault)],
) -> AIConfigResponse:
    """
    Store a provider config.

    The API URL defaults to the preset; an omitted key keeps the stored one.
    Activating a provider deactivates the others.
    """
    preset = get_provider_preset(request.provider) or {}
    api_url = (request.api_url or preset.get("api_url") or "").strip()
    existing = db.configs.get_ai_config(request.provider)
    has_key = bool(request.api_key) or bool(existing and existing.api_key_encrypted)

    errors = validate_provider_config(request.provider, api_url, "stored" if has_key else None)
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))

    extra = {}
    if request.temperature is not None:
        extra["temperature"] = request.temperature
    if request.max_tokens is not None:
        extra["max_tokens"] = request.max_tokens

    db.configs.upsert_ai_config(
        provider=request.provider,
        api_url=api_url,
        api_key_encrypted=vault.encrypt(request.api_key) if request.api_key else None,
        model=request.model or preset.get("default_model") or None,
        extra_config=extra,
        is_active=request.is_active,
    )
    logger.info(f"AI config saved for {request.provider} (active={request.is_active})")

    row = db.configs.get_ai_config(request.provider)
    return AIConfigResponse.from_db(row, _decrypt(vault, row.api_key_encrypted))


@router.get("/config/{provider}")
async def get_provider_config(
    provider: str,
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[CredentialVault, Depends(get_vault)],
) -> AIConfigResponse:
    row = require_resource(db.configs.get_ai_config(provider), "AI config not found")
    return AIConfigResponse.from_db(row, _decrypt(vault, row.api_key_encrypted))


@router.delete("/config/{provider}")
async def delete_provider_config(
    provider: str,
    db: Annotated[Database, Depends(get_db)],
) -> dict:
    if not db.configs.delete_ai_config(provider):
        raise HTTPException(status_code=404, detail="AI config not found")
    return {"success": True}


# ─────────────────────────────────────────────────────────────
# Connection Test & Chat
# ─────────────────────────────────────────────────────────────

@router.post("/test")
async def check_provider_connection(
    request: AITestRequest,
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[CredentialVault, Depends(get_vault)],
) -> ConnectionTestResponse:
    """Send a tiny prompt with the given (or stored) credentials."""
    preset = get_provider_preset(request.provider) or {}
    stored = db.configs.get_ai_config(request.provider)

    api_key = request.api_key or (_decrypt(vault, stored.api_key_encrypted) if stored else None)
    api_url = request.api_url or (stored.api_url if stored else None) or preset.get("api_url")
    model = (
        request.model
        or (stored.model if stored else None)
        or preset.get("default_model")
    )

    errors = validate_provider_config(request.provider, api_url, api_key)
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))

    result = await check_connection(ProviderConfig(
        provider=request.provider,
        api_url=api_url,
        api_key=api_key,
        model=model,
    ))
    return ConnectionTestResponse(**result)


@router.post("/chat")
async def chat(
    request: ChatProxyRequest,
    db: Annotated[Database, Depends(get_db)],
    service: DigestServiceDep,
) -> StreamingResponse:
    """
    Proxy a chat completion as Server-Sent Events.

    Every provider is normalized to OpenAI chat.completion.chunk events; the
    stream ends with "data: [DONE]". Disconnecting aborts the upstream call.
    """
    if not request.messages:
        raise HTTPException(status_code=400, detail="Messages are required")

    try:
        if request.provider:
            provider_config = service.provider_config_from(db.configs.get_ai_config(request.provider))
        else:
            provider_config = service.active_provider_config()
    except DigestError as e:
        raise to_http_exception(e)
    if provider_config is None:
        raise HTTPException(status_code=400, detail="AI not configured")

    params = {}
    temperature = request.temperature if request.temperature is not None else provider_config.temperature
    if temperature is not None:
        params["temperature"] = temperature
    max_tokens = request.max_tokens or provider_config.max_tokens
    if max_tokens:
        params["max_tokens"] = max_tokens

    chat_request = ChatRequest(
        model=request.model or provider_config.model,
        messages=[m.model_dump() for m in request.messages],
        stream=request.stream,
        params=params,
    )
    return StreamingResponse(
        stream_chat_sse(provider_config, chat_request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
