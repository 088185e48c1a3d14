"""Streaming chapter generation endpoint.

Everything that can fail before credits are debited is answered with an
HTTP status; once the stream starts, failures arrive as in-band ``error``
events.
"""

import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from quillstream.config import settings
from quillstream.core.auth import CurrentUser, OwnedNovel
from quillstream.core.rate_limiter import SlidingWindowRateLimiter, get_rate_limiter
from quillstream.core.security import validate_origin
from quillstream.logging_config import get_logger
from quillstream.middleware.rate_limit import limiter
from quillstream.schemas.generation import ErrorResponse, GenerateChapterRequest
from quillstream.services.ai_client import ProviderFactory, get_provider_factory
from quillstream.services.context_assembler import ContextAssembler, get_context_assembler
from quillstream.services.credits import CreditLedger, get_credit_ledger
from quillstream.services.generation import ChapterGenerationOrchestrator
from quillstream.services.generation_log import GenerationRecorder, get_generation_recorder
from quillstream.services.pricing import PricingTable, get_pricing_table

logger = get_logger(__name__)

router = APIRouter(prefix="/api/novels", tags=["Generation"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


def get_chapter_orchestrator(
    ledger: CreditLedger = Depends(get_credit_ledger),
    assembler: ContextAssembler = Depends(get_context_assembler),
    providers: ProviderFactory = Depends(get_provider_factory),
    recorder: GenerationRecorder = Depends(get_generation_recorder),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    pricing: PricingTable = Depends(get_pricing_table),
) -> ChapterGenerationOrchestrator:
    return ChapterGenerationOrchestrator(
        ledger=ledger,
        assembler=assembler,
        providers=providers,
        recorder=recorder,
        rate_limiter=rate_limiter,
        pricing=pricing,
    )


def require_same_origin(request: Request) -> None:
    if not validate_origin(request):
        logger.warning(
            "Rejected cross-origin request",
            path=request.url.path,
            origin=request.headers.get("origin"),
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid request origin",
        )


async def parse_body(request: Request, schema: type):
    """Validate a JSON body, answering 400 (not 422) on any problem."""
    try:
        raw = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be valid JSON",
        )
    try:
        return schema.model_validate(raw)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=[
                {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
                for err in e.errors()
            ],
        )


@router.post(
    "/{novel_id}/chapters/generate",
    response_class=StreamingResponse,
    responses={
        200: {"description": "Server-sent event stream of generation events"},
        400: {"description": "Invalid request body"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        402: {"description": "Insufficient credits"},
        403: {"model": ErrorResponse, "description": "Invalid request origin"},
        404: {"model": ErrorResponse, "description": "Novel not found"},
        429: {"description": "Too many generation requests"},
    },
)
@limiter.limit(settings.ai_ip_rate_limit)
async def generate_chapter(
    request: Request,
    current_user: CurrentUser,
    novel: OwnedNovel,
    orchestrator: ChapterGenerationOrchestrator = Depends(get_chapter_orchestrator),
) -> StreamingResponse:
    """Generate a chapter, streaming content as it is produced.

    Event order: ``credit``, then any ``thinking``/``content`` events,
    then ``usage`` when the backend reports it, and finally exactly one
    ``done`` or ``error``.
    """
    require_same_origin(request)
    payload = await parse_body(request, GenerateChapterRequest)

    try:
        prepared = await orchestrator.prepare(
            user_id=current_user.id, novel_id=novel.id, request=payload
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(
            "Chapter generation could not start",
            user_id=str(current_user.id),
            novel_id=str(novel.id),
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start generation",
        ) from e

    logger.info(
        "Chapter stream starting",
        user_id=str(current_user.id),
        novel_id=str(novel.id),
        tier=prepared.tier.id,
        credits=prepared.credits_consumed,
        max_tokens=prepared.max_tokens,
    )
    return StreamingResponse(
        orchestrator.stream(prepared),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
