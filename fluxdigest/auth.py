"""
Shared-key guard for the /api routers (info and /health stay open).

The database holds the Miniflux token and LLM provider keys, and the routes
can spend provider credits or post to arbitrary webhooks, so anything that can
reach the port can act as the owner. A deployment serves one person through
ReactFlux, which sends AUTH_API_KEY in X-API-Key. Leave AUTH_API_KEY unset
only when the port is bound to localhost.
"""

import secrets

from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

from .config import config

# Header name for the API key
API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(api_key: str | None = Security(API_KEY_HEADER)) -> str:
    """Router dependency: 401 unless X-API-Key matches AUTH_API_KEY (constant-time).

    Returns the accepted key, or "" when no key is configured.
    """
    configured_key = config.AUTH_API_KEY

    # No key configured: local dev mode
    if not configured_key:
        return ""

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not secrets.compare_digest(api_key, configured_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return api_key
