"""Card (character / setting term) generation endpoint."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from quillstream.config import settings
from quillstream.core.auth import CurrentUser, OwnedNovel
from quillstream.core.rate_limiter import (
    SlidingWindowRateLimiter,
    enforce_rate_limit,
    get_rate_limiter,
)
from quillstream.core.security import sanitize_prompt_input
from quillstream.database import get_db
from quillstream.logging_config import get_logger
from quillstream.middleware.rate_limit import limiter
from quillstream.models.novel import Card, CardCategory
from quillstream.routers.generation import parse_body, require_same_origin
from quillstream.schemas.generation import (
    ErrorResponse,
    GenerateCardRequest,
    GenerateCardResponse,
)
from quillstream.services.ai_client import ProviderFactory, get_provider_factory
from quillstream.services.card_generation import CardGenerator
from quillstream.services.credits import CreditLedger, get_credit_ledger, with_credits
from quillstream.services.pricing import PricingTable, get_pricing_table

logger = get_logger(__name__)

router = APIRouter(prefix="/api/novels", tags=["Cards"])

_EXISTING_NAME_LIMIT = 50


@router.post(
    "/{novel_id}/cards/generate",
    response_model=GenerateCardResponse,
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
async def generate_card(
    request: Request,
    current_user: CurrentUser,
    novel: OwnedNovel,
    db: AsyncSession = Depends(get_db),
    ledger: CreditLedger = Depends(get_credit_ledger),
    providers: ProviderFactory = Depends(get_provider_factory),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    pricing: PricingTable = Depends(get_pricing_table),
) -> GenerateCardResponse:
    """Draft a card from keywords.

    Charged up front and refunded when the model call fails.
    """
    require_same_origin(request)
    payload: GenerateCardRequest = await parse_body(request, GenerateCardRequest)
    await enforce_rate_limit(
        rate_limiter,
        f"ai:card:{current_user.id}",
        settings.card_rate_limit,
        settings.rate_limit_window_seconds,
    )

    tier = pricing.card_tier(payload.model)
    result = await db.execute(
        select(Card.name)
        .where(Card.novel_id == novel.id, Card.category == CardCategory(payload.category))
        .order_by(Card.created_at.desc())
        .limit(_EXISTING_NAME_LIMIT)
    )
    existing_names = list(result.scalars().all())

    generator = CardGenerator(providers)
    card, debit = await with_credits(
        ledger,
        user_id=current_user.id,
        amount=tier.credits,
        category="ai_card",
        description=f"Card generation ({tier.name})",
        action=lambda: generator.generate(
            category=payload.category,
            keywords=sanitize_prompt_input(payload.keywords, 500),
            tier=tier,
            style=sanitize_prompt_input(payload.style, 100) or None,
            novel_title=novel.title,
            existing_names=existing_names,
        ),
    )

    logger.info(
        "Card generated",
        user_id=str(current_user.id),
        novel_id=str(novel.id),
        category=payload.category,
        tier=tier.id,
        credits=tier.credits,
    )
    return GenerateCardResponse(
        card=card, credits_consumed=tier.credits, balance_after=debit.balance
    )
