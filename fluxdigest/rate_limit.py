"""
Per-client request ceiling (slowapi, in-memory).

Every /api/digests/generate, /api/ai/chat and scheduled-task /run call is
a paid LLM request made with the stored provider key, and every push hits a
third-party webhook. RATE_LIMIT_PER_MINUTE caps how fast a leaked API key or
a runaway client can do either. Behind a reverse proxy all traffic shares the
proxy address, so the limit then applies to the whole deployment.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from fastapi import Request
from fastapi.responses import JSONResponse

from .config import config


def get_rate_limit() -> str:
    """Rate limit string from config; 0 or less disables limiting."""
    limit = config.RATE_LIMIT_PER_MINUTE
    if limit <= 0:
        return "1000000/minute"
    return f"{limit}/minute"


limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[get_rate_limit()],
    storage_uri="memory://",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """JSON 429 response with Retry-After."""
    retry_after = getattr(exc, "retry_after", 60)
    return JSONResponse(
        status_code=429,
        content={
            "detail": f"Rate limit exceeded: {exc.detail}",
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


def setup_rate_limiting(app):
    """Attach the limiter, its middleware and the 429 handler to an app."""
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
