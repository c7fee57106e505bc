"""
Miniflux connection routes.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from ..auth import verify_api_key
from ..config import get_db, get_vault
from ..database import Database
from ..exceptions import DigestError, to_http_exception
from ..miniflux import MinifluxClient
from ..schemas import (
    ConnectionTestResponse,
    MinifluxConfigRequest,
    MinifluxConfigResponse,
    MinifluxTestRequest,
)
from ..vault import CredentialVault

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/digests/miniflux",
    tags=["miniflux"],
    dependencies=[Depends(verify_api_key)]
)


def _stored_key(row, vault: CredentialVault) -> str | None:
    if row is None or not row.api_key_encrypted:
        return None
    try:
        return vault.decrypt(row.api_key_encrypted)
    except DigestError as e:
        raise to_http_exception(e)


@router.get("/config")
async def get_miniflux_config(
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[CredentialVault, Depends(get_vault)],
) -> MinifluxConfigResponse:
    """Stored Miniflux connection with the key masked."""
    row = db.configs.get_active_miniflux_config()
    return MinifluxConfigResponse.from_db(row, _stored_key(row, vault))


@router.post("/config")
async def save_miniflux_config(
    request: MinifluxConfigRequest,
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[CredentialVault, Depends(get_vault)],
) -> MinifluxConfigResponse:
    """Store the Miniflux connection; an omitted key keeps the stored one."""
    api_url = request.api_url.strip().rstrip("/")
    if not api_url:
        raise HTTPException(status_code=400, detail="API URL is required")

    existing = db.configs.get_active_miniflux_config()
    if not request.api_key and (existing is None or not existing.api_key_encrypted):
        raise HTTPException(status_code=400, detail="API Key is required")

    db.configs.upsert_miniflux_config(
        api_url=api_url,
        api_key_encrypted=vault.encrypt(request.api_key) if request.api_key else None,
    )
    logger.info(f"Miniflux connection saved: {api_url}")

    row = db.configs.get_active_miniflux_config()
    return MinifluxConfigResponse.from_db(row, _stored_key(row, vault))


@router.post("/test")
async def check_miniflux_connection(
    request: MinifluxTestRequest,
    db: Annotated[Database, Depends(get_db)],
    vault: Annotated[CredentialVault, Depends(get_vault)],
) -> ConnectionTestResponse:
    """Check a Miniflux URL/key (or the stored ones) by listing feeds."""
    row = db.configs.get_active_miniflux_config()
    api_url = request.api_url or (row.api_url if row else None)
    api_key = request.api_key or _stored_key(row, vault)
    if not api_url or not api_key:
        raise HTTPException(status_code=400, detail="Miniflux URL and API key are required")

    result = await MinifluxClient(api_url, api_key).check_connection()
    return ConnectionTestResponse(**result)
