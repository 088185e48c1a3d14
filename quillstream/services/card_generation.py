"""Single-shot generation of character and setting cards.

The model is asked for one JSON object. Backends without a native JSON
mode sometimes wrap it in a markdown fence or surrounding prose, so the
reply is parsed leniently.
"""

import json
import re
from typing import Any

from pydantic import ValidationError

from quillstream.logging_config import get_logger
from quillstream.schemas.ai import UnifiedGenerateRequest
from quillstream.schemas.generation import GeneratedCard
from quillstream.services.ai_client import AIProviderError, ProviderFactory
from quillstream.services.pricing import CardModelTier
from quillstream.services.prompts import build_card_system_prompt, build_card_user_prompt

logger = get_logger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
_BRACED = re.compile(r"\{.*\}", re.DOTALL)

CARD_MAX_TOKENS = 2048
CARD_TEMPERATURE = 0.9


def extract_json_object(text: str) -> dict[str, Any]:
    """Parse the first JSON object in a model reply.

    Tries the whole reply, then a fenced code block, then the outermost
    braces.

    Raises:
        ValueError: No JSON object could be parsed.
    """
    candidates = [text.strip()]
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    braced = _BRACED.search(text)
    if braced:
        candidates.append(braced.group(0))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    raise ValueError("Model reply does not contain a JSON object")


class CardGenerator:
    """Turns keywords into a card draft with one model call."""

    def __init__(self, providers: ProviderFactory) -> None:
        self._providers = providers

    async def generate(
        self,
        *,
        category: str,
        keywords: str,
        tier: CardModelTier,
        style: str | None = None,
        novel_title: str | None = None,
        existing_names: list[str] | None = None,
    ) -> GeneratedCard:
        """Generate a card draft.

        Raises:
            AIProviderError: The backend failed or its reply was unusable.
        """
        provider = self._providers.text_provider(tier.model)
        request = UnifiedGenerateRequest(
            model=tier.model,
            system_prompt=build_card_system_prompt(
                category,
                style=style,
                novel_title=novel_title,
                existing_names=existing_names,
            ),
            user_prompt=build_card_user_prompt(category, keywords),
            max_tokens=CARD_MAX_TOKENS,
            temperature=CARD_TEMPERATURE,
            json_mode=provider.capabilities.json_mode,
        )
        result = await provider.generate(request)

        try:
            card = GeneratedCard.model_validate(extract_json_object(result.content))
        except (ValueError, ValidationError) as e:
            logger.warning(
                "Unparseable card reply",
                provider=provider.name.value,
                model=tier.model,
                content_preview=result.content[:200],
            )
            raise AIProviderError(provider.name, f"Invalid card JSON: {e}") from e

        if not card.names:
            raise AIProviderError(provider.name, "Card reply has no candidate names")
        return card
