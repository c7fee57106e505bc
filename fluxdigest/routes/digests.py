"""
Digest routes: listing, editing, preview, background generation and push.
"""

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query

from ..auth import verify_api_key
from ..exceptions import DigestError, require_digest, require_job, to_http_exception
from ..prompts import DEFAULT_PROMPT_TEMPLATE
from ..schemas import (
    DigestCreateRequest,
    DigestGenerateRequest,
    DigestListResponse,
    DigestPreviewRequest,
    DigestResponse,
    DigestUpdateRequest,
    JobCreatedResponse,
    JobStatusResponse,
    PreviewResponse,
    PromptTemplateResponse,
    PushRequest,
    PushResultResponse,
    ReadAllRequest,
)
from ..services import (
    DigestOptions,
    DigestService,
    DigestServiceDep,
    JobTrackerDep,
    PushServiceDep,
    SourceConfig,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/digests",
    tags=["digests"],
    dependencies=[Depends(verify_api_key)]
)


def resolve_source_config(
    service: DigestService,
    api_url: str | None = None,
    api_key: str | None = None,
) -> SourceConfig | None:
    """Stored Miniflux connection, else the one supplied with the request."""
    try:
        stored = service.active_source_config()
    except DigestError as e:
        raise to_http_exception(e)
    if stored is not None:
        return stored
    if api_url and api_key:
        return SourceConfig(api_url=api_url.rstrip("/"), api_key=api_key)
    return None


def build_options(request: DigestPreviewRequest) -> DigestOptions:
    return DigestOptions(
        scope=request.scope,
        feed_id=request.feed_id,
        group_id=request.group_id,
        hours=request.hours,
        target_lang=request.target_lang,
        custom_prompt=request.prompt,
        unread_only=request.unread_only,
        timezone=getattr(request, "timezone", None),
        scope_name=getattr(request, "scope_name", None),
    )


# ─────────────────────────────────────────────────────────────
# Listing & Templates
# ─────────────────────────────────────────────────────────────

@router.get("")
async def list_digests(
    service: DigestServiceDep,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    scope: str | None = None,
    scope_id: int | None = None,
    is_read: bool | None = None,
) -> DigestListResponse:
    """List stored digests, newest first."""
    result = service.list_digests(
        page=page, limit=limit, scope=scope, scope_id=scope_id, is_read=is_read
    )
    return DigestListResponse.from_page(result)


@router.post("", status_code=201)
async def create_digest(
    request: DigestCreateRequest,
    service: DigestServiceDep,
) -> DigestResponse:
    """Save a digest supplied by the client."""
    if not request.title.strip() or not request.content.strip():
        raise HTTPException(status_code=400, detail="Title and content are required")

    digest = service.save_digest(
        title=request.title,
        content=request.content,
        scope=request.scope,
        scope_id=request.scope_id,
        scope_name=request.scope_name,
        article_count=request.article_count,
        hours=request.hours,
        target_lang=request.target_lang,
    )
    return DigestResponse.from_db(digest)


@router.get("/prompt-default")
async def get_default_prompt() -> PromptTemplateResponse:
    """Default prompt template with {{targetLang}} and {{content}} placeholders."""
    return PromptTemplateResponse(template=DEFAULT_PROMPT_TEMPLATE)


# ─────────────────────────────────────────────────────────────
# Generation
# ─────────────────────────────────────────────────────────────

@router.post("/preview")
async def preview_digest(
    request: DigestPreviewRequest,
    service: DigestServiceDep,
) -> PreviewResponse:
    """Article count and estimated prompt tokens, without calling the LLM."""
    source_config = resolve_source_config(
        service, request.miniflux_api_url, request.miniflux_api_key
    )
    if source_config is None:
        raise HTTPException(status_code=400, detail="Miniflux not configured")

    try:
        preview = await service.preview(source_config, build_options(request))
        provider_config = service.active_provider_config()
    except DigestError as e:
        raise to_http_exception(e)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch preview: {e}")

    return PreviewResponse(
        article_count=preview.article_count,
        estimated_tokens=preview.estimated_tokens,
        max_tokens=provider_config.max_tokens if provider_config else None,
    )


@router.post("/generate", status_code=202)
async def generate_digest(
    request: DigestGenerateRequest,
    service: DigestServiceDep,
    jobs: JobTrackerDep,
    push_service: PushServiceDep,
) -> JobCreatedResponse:
    """
    Start digest generation in the background.

    Poll GET /api/digests/jobs/{job_id} for progress.
    """
    try:
        provider_config = service.active_provider_config()
    except DigestError as e:
        raise to_http_exception(e)
    if provider_config is None:
        raise HTTPException(
            status_code=400,
            detail="AI not configured. Please configure AI settings first.",
        )

    source_config = resolve_source_config(
        service, request.miniflux_api_url, request.miniflux_api_key
    )
    if source_config is None:
        raise HTTPException(
            status_code=400,
            detail="Miniflux not configured. Please configure Miniflux settings first.",
        )

    options = build_options(request)
    job = jobs.create()

    async def generate():
        return await service.generate(source_config, provider_config, options)

    push = None
    if request.push_config and request.push_config.url:
        push_config = request.push_config.model_dump()

        async def push(digest):
            return await push_service.send(push_config, digest.title, digest.content)

    jobs.start(job.id, generate, push)
    logger.info(f"Started generation job {job.id} (scope={options.scope}, hours={options.hours})")
    return JobCreatedResponse(job_id=job.id, status=job.status)


@router.get("/jobs/{job_id}")
async def get_job_status(job_id: str, jobs: JobTrackerDep) -> JobStatusResponse:
    """Status of a generation job; unknown and expired jobs are 404."""
    job = require_job(jobs.get(job_id))
    response = JobStatusResponse(
        job_id=job.id,
        status=job.status,
        progress=job.progress,
        error=job.error,
    )
    if job.status == "completed" and job.digest is not None:
        response.digest = DigestResponse.from_generated(job.digest)
        response.push = PushResultResponse.from_result(job.push)
    return response


@router.post("/push/test")
async def send_test_notification(request: PushRequest, push_service: PushServiceDep) -> PushResultResponse:
    """Send a fixed test notification to check a webhook."""
    result = await push_service.test(request.push_config.model_dump())
    return PushResultResponse.from_result(result)


# ─────────────────────────────────────────────────────────────
# Read State
# ─────────────────────────────────────────────────────────────

@router.post("/read-all")
async def mark_all_read(
    service: DigestServiceDep,
    request: ReadAllRequest | None = None,
) -> dict:
    """Mark every digest (optionally within one scope) as read."""
    request = request or ReadAllRequest()
    updated = service.mark_all_read(scope=request.scope, scope_id=request.scope_id)
    return {"success": True, "updated": updated}


# ─────────────────────────────────────────────────────────────
# Single Digest
# ─────────────────────────────────────────────────────────────

@router.get("/{digest_id}")
async def get_digest(digest_id: int, service: DigestServiceDep) -> DigestResponse:
    digest = require_digest(service.get_digest(digest_id))
    return DigestResponse.from_db(digest)


@router.put("/{digest_id}")
async def update_digest(
    digest_id: int,
    request: DigestUpdateRequest,
    service: DigestServiceDep,
) -> DigestResponse:
    digest = require_digest(service.update_digest(
        digest_id,
        title=request.title,
        content=request.content,
        is_read=request.is_read,
    ))
    return DigestResponse.from_db(digest)


@router.delete("/{digest_id}")
async def delete_digest(digest_id: int, service: DigestServiceDep) -> dict:
    if not service.delete_digest(digest_id):
        raise HTTPException(status_code=404, detail="Digest not found")
    return {"success": True}


@router.post("/{digest_id}/read")
async def mark_digest_read(digest_id: int, service: DigestServiceDep) -> dict:
    if not service.mark_read(digest_id):
        raise HTTPException(status_code=404, detail="Digest not found")
    return {"success": True}


@router.post("/{digest_id}/push")
async def push_digest(
    digest_id: int,
    request: PushRequest,
    service: DigestServiceDep,
    push_service: PushServiceDep,
) -> PushResultResponse:
    """Send a stored digest to a webhook."""
    digest = require_digest(service.get_digest(digest_id))
    result = await push_service.send(
        request.push_config.model_dump(), digest.title, digest.content
    )
    return PushResultResponse.from_result(result)
