"""Model tier catalogue."""

from fastapi import APIRouter, Depends

from quillstream.schemas.generation import (
    AvailableModelsResponse,
    CardModelInfo,
    TextModelInfo,
)
from quillstream.services.pricing import (
    DEFAULT_CARD_TIER,
    DEFAULT_TEXT_TIER,
    PricingTable,
    get_pricing_table,
)

router = APIRouter(prefix="/api/models", tags=["Models"])


@router.get(
    "/available",
    response_model=AvailableModelsResponse,
    response_model_by_alias=True,
)
async def available_models(
    pricing: PricingTable = Depends(get_pricing_table),
) -> AvailableModelsResponse:
    """List the selectable chapter and card tiers with their credit prices."""
    return AvailableModelsResponse(
        text_models=[
            TextModelInfo(
                id=tier.id,
                name=tier.name,
                credits=tier.credits,
                thinking=tier.thinking,
                description=tier.description,
            )
            for tier in pricing.text_tiers.values()
        ],
        card_models=[
            CardModelInfo(
                id=tier.id,
                name=tier.name,
                credits=tier.credits,
                description=tier.description,
            )
            for tier in pricing.card_tiers.values()
        ],
        default_text_model=DEFAULT_TEXT_TIER,
        default_card_model=DEFAULT_CARD_TIER,
    )
