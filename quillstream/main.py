"""Quillstream FastAPI application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from quillstream import __version__
from quillstream.config import settings, validate_secret_key
from quillstream.core.rate_limiter import close_rate_limiter
from quillstream.database import close_database
from quillstream.logging_config import get_logger, setup_logging
from quillstream.middleware import CorrelationIdMiddleware
from quillstream.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from quillstream.routers import (
    cards,
    covers,
    generation,
    health,
    models,
    outline,
    rewrite,
    usage,
)
from quillstream.services.ai_client import close_provider_factory

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    validate_secret_key()
    logger.info("Quillstream API started", version=__version__)

    yield

    logger.info("Shutting down Quillstream API...")
    await close_provider_factory()
    await close_rate_limiter()
    await close_database()
    logger.info("Quillstream API shutdown complete")


app = FastAPI(
    title="Quillstream API",
    description="AI-assisted novel writing: streamed chapter generation with credits",
    version=__version__,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(models.router)
app.include_router(generation.router)
app.include_router(cards.router)
app.include_router(covers.router)
app.include_router(outline.router)
app.include_router(rewrite.router)
app.include_router(usage.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "Quillstream API",
        "version": __version__,
        "docs": "/docs",
    }
