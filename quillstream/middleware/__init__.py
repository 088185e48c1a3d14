"""Middleware package for the Quillstream API."""

from quillstream.middleware.correlation import CORRELATION_ID_HEADER, CorrelationIdMiddleware

__all__ = ["CorrelationIdMiddleware", "CORRELATION_ID_HEADER"]
