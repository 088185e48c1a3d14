"""Per-user generation usage."""

from fastapi import APIRouter, Depends

from quillstream.core.auth import CurrentUser
from quillstream.schemas.generation import ErrorResponse, TokenUsageSummary
from quillstream.services.generation_log import (
    GenerationRecorder,
    get_generation_recorder,
)

router = APIRouter(prefix="/api/user", tags=["Usage"])


@router.get(
    "/token-usage",
    response_model=TokenUsageSummary,
    response_model_by_alias=True,
    responses={401: {"model": ErrorResponse, "description": "Not authenticated"}},
)
async def token_usage(
    current_user: CurrentUser,
    recorder: GenerationRecorder = Depends(get_generation_recorder),
) -> TokenUsageSummary:
    """Totals over every recorded chapter generation of the current user."""
    return await recorder.usage_summary(current_user.id)
