"""
Rate Limiting Middleware

FastAPI middleware gating audit endpoints by client identity.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from site_audit.config import settings
from site_audit.core.exceptions import RateLimited
from site_audit.services.rate_limiter import (
    UNKNOWN_IDENTITY,
    RateLimiter,
    get_rate_limiter,
)

logger = logging.getLogger(__name__)

# Path prefixes that spend an audit run
RATE_LIMITED_PATHS = (
    f"{settings.API_V1_STR}/audit",
)


def get_client_identity(request: Request) -> str:
    """
    Derive the rate-limit identity for a request.

    Uses the first X-Forwarded-For hop, then X-Real-IP, then the socket
    peer. Requests with none of these share the "unknown" bucket.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    real_ip = request.headers.get("x-real-ip", "").strip()
    if real_ip:
        return real_ip

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_IDENTITY


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware for rate limiting audit requests.

    Fixed window per client identity. Adds rate limit headers to
    responses on limited paths.
    """

    def __init__(self, app, rate_limiter: RateLimiter = None):
        super().__init__(app)
        self._rate_limiter = rate_limiter

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter or get_rate_limiter()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Skip if rate limiting is disabled
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        path = request.url.path
        if request.method == "OPTIONS" or not path.startswith(RATE_LIMITED_PATHS):
            return await call_next(request)

        identity = get_client_identity(request)
        result = await self.rate_limiter.check(identity)

        if not result.allowed:
            logger.warning(f"Rate limit exceeded for {identity} on {path}")
            error = RateLimited(retry_after=result.retry_after)
            return JSONResponse(
                status_code=error.status_code,
                content={"error": error.message},
                headers={
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(result.reset_at),
                    "Retry-After": str(result.retry_after or 60),
                },
            )

        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(result.reset_at)

        return response
