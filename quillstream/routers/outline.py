"""Outline node generation endpoint."""

from fastapi import APIRouter, Depends, Request

from quillstream.config import settings
from quillstream.core.auth import CurrentUser, OwnedNovel
from quillstream.core.rate_limiter import (
    SlidingWindowRateLimiter,
    enforce_rate_limit,
    get_rate_limiter,
)
from quillstream.core.security import sanitize_prompt_input
from quillstream.logging_config import get_logger
from quillstream.middleware.rate_limit import limiter
from quillstream.routers.generation import parse_body, require_same_origin
from quillstream.schemas.generation import (
    ErrorResponse,
    GenerateOutlineRequest,
    GenerateOutlineResponse,
)
from quillstream.services.ai_client import ProviderFactory, get_provider_factory
from quillstream.services.credits import CreditLedger, get_credit_ledger, with_credits
from quillstream.services.outline_generation import OutlineGenerator
from quillstream.services.pricing import PricingTable, get_pricing_table

logger = get_logger(__name__)

router = APIRouter(prefix="/api/novels", tags=["Outline"])


@router.post(
    "/{novel_id}/outline/generate",
    response_model=GenerateOutlineResponse,
    response_model_by_alias=True,
    responses={
        400: {"description": "Invalid request body"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        402: {"description": "Insufficient credits"},
        403: {"model": ErrorResponse, "description": "Invalid request origin"},
        404: {"model": ErrorResponse, "description": "Novel not found"},
        429: {"description": "Too many generation requests"},
        502: {"model": ErrorResponse, "description": "Generation failed, credits refunded"},
    },
)
@limiter.limit(settings.ai_ip_rate_limit)
async def generate_outline(
    request: Request,
    current_user: CurrentUser,
    novel: OwnedNovel,
    ledger: CreditLedger = Depends(get_credit_ledger),
    providers: ProviderFactory = Depends(get_provider_factory),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    pricing: PricingTable = Depends(get_pricing_table),
) -> GenerateOutlineResponse:
    """Draft a volume, chapter outline or plot point from keywords."""
    require_same_origin(request)
    payload: GenerateOutlineRequest = await parse_body(request, GenerateOutlineRequest)
    await enforce_rate_limit(
        rate_limiter,
        f"ai:outline:{current_user.id}",
        settings.outline_rate_limit,
        settings.rate_limit_window_seconds,
    )

    tier = pricing.card_tier(payload.model)
    parent = None
    if payload.parent is not None:
        parent = payload.parent.model_copy(
            update={
                "title": sanitize_prompt_input(payload.parent.title, 100),
                "content": sanitize_prompt_input(payload.parent.content, 2000) or None,
            }
        )

    generator = OutlineGenerator(providers)
    outline, debit = await with_credits(
        ledger,
        user_id=current_user.id,
        amount=tier.credits,
        category="ai_outline",
        description=f"Outline generation ({tier.name})",
        action=lambda: generator.generate(
            node_type=payload.node_type,
            keywords=sanitize_prompt_input(payload.keywords, 500),
            tier=tier,
            style=sanitize_prompt_input(payload.style, 200) or None,
            novel_title=novel.title,
            novel_summary=novel.summary,
            parent=parent,
        ),
    )

    logger.info(
        "Outline generated",
        user_id=str(current_user.id),
        novel_id=str(novel.id),
        node_type=payload.node_type,
        tier=tier.id,
        credits=tier.credits,
    )
    return GenerateOutlineResponse(
        node_type=payload.node_type,
        outline=outline,
        credits_consumed=tier.credits,
        balance_after=debit.balance,
    )
