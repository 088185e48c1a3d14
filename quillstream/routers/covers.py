"""Cover image generation endpoint."""

from fastapi import APIRouter, Depends, Request

from quillstream.config import settings
from quillstream.core.auth import CurrentUser
from quillstream.core.rate_limiter import (
    SlidingWindowRateLimiter,
    enforce_rate_limit,
    get_rate_limiter,
)
from quillstream.core.security import sanitize_prompt_input
from quillstream.logging_config import get_logger
from quillstream.middleware.rate_limit import limiter
from quillstream.routers.generation import parse_body, require_same_origin
from quillstream.schemas.ai import ImageGenerateRequest
from quillstream.schemas.generation import (
    ErrorResponse,
    GenerateCoverRequest,
    GenerateCoverResponse,
)
from quillstream.services.ai_client import ProviderFactory, get_provider_factory
from quillstream.services.credits import CreditLedger, get_credit_ledger, with_credits
from quillstream.services.pricing import PricingTable, get_pricing_table
from quillstream.services.prompts import build_cover_prompt

logger = get_logger(__name__)

router = APIRouter(prefix="/api/covers", tags=["Covers"])


@router.post(
    "/generate",
    response_model=GenerateCoverResponse,
    response_model_by_alias=True,
    responses={
        400: {"description": "Invalid request body"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        402: {"description": "Insufficient credits"},
        403: {"model": ErrorResponse, "description": "Invalid request origin"},
        429: {"description": "Too many generation requests"},
        502: {"model": ErrorResponse, "description": "Generation failed, credits refunded"},
    },
)
@limiter.limit(settings.ai_ip_rate_limit)
async def generate_cover(
    request: Request,
    current_user: CurrentUser,
    ledger: CreditLedger = Depends(get_credit_ledger),
    providers: ProviderFactory = Depends(get_provider_factory),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    pricing: PricingTable = Depends(get_pricing_table),
) -> GenerateCoverResponse:
    """Generate a cover illustration, billed by output size."""
    require_same_origin(request)
    payload: GenerateCoverRequest = await parse_body(request, GenerateCoverRequest)
    await enforce_rate_limit(
        rate_limiter,
        f"ai:cover:{current_user.id}",
        settings.cover_rate_limit,
        settings.rate_limit_window_seconds,
    )

    image_request = ImageGenerateRequest(
        prompt=build_cover_prompt(
            sanitize_prompt_input(payload.prompt, 1000),
            sanitize_prompt_input(payload.style, 200) or None,
        ),
        model=payload.model,
        aspect_ratio=payload.aspect_ratio,
        size=payload.size,
    )
    cost = pricing.image_cost(payload.size)

    async def render():
        return await providers.image_provider(payload.model).generate(image_request)

    image, debit = await with_credits(
        ledger,
        user_id=current_user.id,
        amount=cost,
        category="ai_cover",
        description=f"Cover generation ({payload.size})",
        action=render,
    )

    logger.info(
        "Cover generated",
        user_id=str(current_user.id),
        size=payload.size,
        credits=cost,
    )
    return GenerateCoverResponse(
        image_base64=image.image_base64,
        mime_type=image.mime_type,
        width=image.width,
        height=image.height,
        credits_consumed=cost,
        balance_after=debit.balance,
    )
