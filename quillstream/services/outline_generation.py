"""Single-shot drafting of outline nodes (volumes, chapter outlines, plot points)."""

from pydantic import ValidationError

from quillstream.logging_config import get_logger
from quillstream.schemas.ai import UnifiedGenerateRequest
from quillstream.schemas.generation import GeneratedOutline, OutlineParent
from quillstream.services.ai_client import AIProviderError, ProviderFactory
from quillstream.services.card_generation import extract_json_object
from quillstream.services.pricing import CardModelTier
from quillstream.services.prompts import (
    build_outline_system_prompt,
    build_outline_user_prompt,
)

logger = get_logger(__name__)

OUTLINE_MAX_TOKENS = 2048


class OutlineGenerator:
    """Turns keywords into an outline node draft with one model call.

    Outline drafting shares the card tiers: same models, same prices.
    """

    def __init__(self, providers: ProviderFactory) -> None:
        self._providers = providers

    async def generate(
        self,
        *,
        node_type: str,
        keywords: str,
        tier: CardModelTier,
        style: str | None = None,
        novel_title: str | None = None,
        novel_summary: str | None = None,
        parent: OutlineParent | None = None,
    ) -> GeneratedOutline:
        """Generate an outline node draft.

        Raises:
            AIProviderError: The backend failed or its reply was unusable.
        """
        provider = self._providers.text_provider(tier.model)
        request = UnifiedGenerateRequest(
            model=tier.model,
            system_prompt=build_outline_system_prompt(
                node_type,
                style=style,
                novel_title=novel_title,
                novel_summary=novel_summary,
                parent_type=parent.type if parent else None,
                parent_title=parent.title if parent else None,
                parent_content=parent.content if parent else None,
            ),
            user_prompt=build_outline_user_prompt(node_type, keywords),
            max_tokens=OUTLINE_MAX_TOKENS,
            json_mode=provider.capabilities.json_mode,
        )
        result = await provider.generate(request)

        try:
            outline = GeneratedOutline.model_validate(extract_json_object(result.content))
        except (ValueError, ValidationError) as e:
            logger.warning(
                "Unparseable outline reply",
                provider=provider.name.value,
                model=tier.model,
                node_type=node_type,
                content_preview=result.content[:200],
            )
            raise AIProviderError(provider.name, f"Invalid outline JSON: {e}") from e

        if not outline.titles or not outline.content.strip():
            raise AIProviderError(provider.name, "Outline reply is missing titles or content")
        return outline
