"""Per-IP rate limiting with slowapi.

This is a coarse outer guard on the AI endpoints. The per-user sliding
window that gates each generation kind lives in
``quillstream.core.rate_limiter``.
"""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from quillstream.config import settings

_storage_uri = (
    "memory://"
    if settings.testing
    else (settings.redis_url if settings.redis_url else "memory://")
)


def _get_real_client_ip(request: Request) -> str:
    """Client IP, honouring X-Forwarded-For / X-Real-IP from the reverse proxy."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(
    key_func=_get_real_client_ip,
    storage_uri=_storage_uri,
    enabled=not settings.testing,
)


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """Return a 429 JSON response when the per-IP limit is exceeded."""
    return JSONResponse(
        status_code=429,
        content={"detail": {"message": f"Rate limit exceeded: {exc.detail}"}},
    )
