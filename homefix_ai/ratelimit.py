"""Per-client rate limiting (slowapi, in-memory counters)."""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from homefix_ai.config import settings
from homefix_ai.logging_config import log_event
from homefix_ai.models import ErrorResponse


def client_key(request: Request) -> str:
    """First X-Forwarded-For hop when behind a proxy, else the peer address."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    first_hop = forwarded.split(",")[0].strip()
    return first_hop or get_remote_address(request) or "unknown"


limiter = Limiter(key_func=client_key, default_limits=[settings.DEFAULT_RATE_LIMIT])


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    """Return the error envelope with a Retry-After hint."""
    retry_after = exc.limit.limit.get_expiry()
    log_event("rate_limit_exceeded", {
        "path": request.url.path,
        "limit": str(exc.detail),
    })
    body = ErrorResponse(error="Too many requests. Please wait before trying again.")
    return JSONResponse(
        status_code=429,
        content=body.model_dump(by_alias=True),
        headers={"Retry-After": str(retry_after)},
    )
