"""
Rate limiting configuration for API endpoints.

Uses slowapi (FastAPI-compatible rate limiter).

- Default: RATE_LIMIT_DEFAULT (100 requests/minute)
- Message sends (group and direct): RATE_LIMIT_SEND (20 requests/minute)

Requests are keyed by the principal's user id when the bearer token could be
decoded by RequestContextMiddleware, otherwise by client IP.
"""

from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from workspace_chat.config import settings
from workspace_chat.core.logging_config import get_logger

logger = get_logger(__name__)


def get_user_identifier(request: Request) -> str:
    user_id: Optional[str] = getattr(request.state, "user_id", None)

    if user_id:
        return f"user:{user_id}"

    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri="memory://",  # Per-process; use Redis when running several workers
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "rate_limit_exceeded",
        key=get_user_identifier(request),
        path=request.url.path,
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={"message": f"Rate limit exceeded: {exc.detail}"},
    )
