"""Passage rewrite endpoint."""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from quillstream.config import settings
from quillstream.core.auth import CurrentUser
from quillstream.core.rate_limiter import (
    SlidingWindowRateLimiter,
    enforce_rate_limit,
    get_rate_limiter,
)
from quillstream.middleware.rate_limit import limiter
from quillstream.routers.generation import parse_body, require_same_origin
from quillstream.schemas.generation import (
    ErrorResponse,
    RewritePassageRequest,
    RewritePassageResponse,
)
from quillstream.services.ai_client import ProviderFactory, get_provider_factory
from quillstream.services.credits import CreditLedger, get_credit_ledger, with_credits
from quillstream.services.pricing import PricingTable, get_pricing_table
from quillstream.services.rewrite import PassageRewriter

router = APIRouter(prefix="/api/rewrite", tags=["Rewrite"])


def get_passage_rewriter(
    providers: ProviderFactory = Depends(get_provider_factory),
) -> PassageRewriter:
    return PassageRewriter(
        providers,
        block_chars=settings.rewrite_block_chars,
        concurrency=settings.rewrite_concurrency,
    )


@router.post(
    "",
    response_model=RewritePassageResponse,
    response_model_by_alias=True,
    responses={
        400: {"description": "Invalid request body"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        402: {"description": "Insufficient credits"},
        403: {"model": ErrorResponse, "description": "Invalid request origin"},
        429: {"description": "Too many generation requests"},
        502: {"model": ErrorResponse, "description": "Rewrite failed, credits refunded"},
    },
)
@limiter.limit(settings.ai_ip_rate_limit)
async def rewrite_passage(
    request: Request,
    current_user: CurrentUser,
    ledger: CreditLedger = Depends(get_credit_ledger),
    rewriter: PassageRewriter = Depends(get_passage_rewriter),
    rate_limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
    pricing: PricingTable = Depends(get_pricing_table),
) -> RewritePassageResponse:
    """Rewrite a passage in a livelier voice, billed by its length.

    The passage is rewritten text, not instructions, so paragraph breaks
    are kept and it is not run through prompt sanitising.
    """
    require_same_origin(request)
    payload: RewritePassageRequest = await parse_body(request, RewritePassageRequest)
    if not payload.text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Passage is empty",
        )
    await enforce_rate_limit(
        rate_limiter,
        f"ai:rewrite:{current_user.id}",
        settings.rewrite_rate_limit,
        settings.rate_limit_window_seconds,
    )

    cost = pricing.rewrite_cost(len(payload.text))
    outcome, debit = await with_credits(
        ledger,
        user_id=current_user.id,
        amount=cost,
        category="ai_rewrite",
        description=f"Passage rewrite ({len(payload.text)} chars)",
        action=lambda: rewriter.rewrite(payload.text, payload.model),
    )

    return RewritePassageResponse(
        text=outcome.text,
        original_length=len(payload.text),
        rewritten_length=len(outcome.text),
        block_count=outcome.block_count,
        rewritten_blocks=outcome.rewritten_blocks,
        credits_consumed=cost,
        balance_after=debit.balance,
    )
