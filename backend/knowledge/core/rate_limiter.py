"""Shared SlowAPI rate limiter configuration."""
from __future__ import annotations

import logging
from typing import Callable

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

logger = logging.getLogger(__name__)


def _caller_key(request: Request) -> str:
    """Return the rate limit bucket key for the current request."""

    # Callers authenticated with the service token share one upstream proxy,
    # so a forwarded user identifier keeps them from throttling each other.
    forwarded_user = request.headers.get("X-User-Id")
    if forwarded_user:
        return f"user:{forwarded_user}"
    return get_remote_address(request)


limiter = Limiter(key_func=_caller_key)


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return a JSON response when a rate limit is exceeded."""

    logger.warning(
        "Rate limit exceeded for path=%s limit=%s", request.url.path, exc.detail
    )
    return JSONResponse(
        {"detail": "Rate limit exceeded", "error": "RateLimitExceeded", "retryable": True},
        status_code=exc.status_code,
    )


RateLimitHandler = Callable[[Request, RateLimitExceeded], JSONResponse]
