"""Correlation ID middleware.

Every request gets a correlation ID (taken from ``X-Correlation-ID`` when
the client sends one) that is attached to all log lines emitted while the
request is handled and echoed back in the response headers.

Pure ASGI rather than ``BaseHTTPMiddleware`` so streamed generation
responses are passed through without buffering.
"""

import time
import uuid

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from quillstream.logging_config import correlation_id_ctx, get_logger

logger = get_logger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"
_MAX_INCOMING_ID_LENGTH = 128

# Probes hit these constantly; they are not worth a log line each.
_QUIET_PATHS = ("/health", "/health/live")


def _incoming_correlation_id(scope: Scope) -> str | None:
    for name, value in scope.get("headers", []):
        if name == b"x-correlation-id":
            decoded = value.decode("latin-1").strip()
            if decoded and len(decoded) <= _MAX_INCOMING_ID_LENGTH:
                return decoded
    return None


class CorrelationIdMiddleware:
    """Sets the correlation ID context and logs request start and end."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        correlation_id = _incoming_correlation_id(scope) or str(uuid.uuid4())
        token = correlation_id_ctx.set(correlation_id)

        method = scope.get("method", "")
        path = scope.get("path", "")
        quiet = path in _QUIET_PATHS
        start_time = time.perf_counter()
        status_code: int | None = None

        if not quiet:
            client = scope.get("client")
            logger.info(
                "Request started",
                method=method,
                path=path,
                client_ip=client[0] if client else None,
            )

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status")
                headers = list(message.get("headers", []))
                headers.append(
                    (CORRELATION_ID_HEADER.lower().encode(), correlation_id.encode())
                )
                message = {**message, "headers": headers}
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
            if not quiet:
                logger.info(
                    "Request completed",
                    method=method,
                    path=path,
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
        except Exception:
            logger.exception(
                "Request failed",
                method=method,
                path=path,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            raise
        finally:
            correlation_id_ctx.reset(token)
