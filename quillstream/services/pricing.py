"""Model tiers and credit tariffs.

A tier is what users pick ("balanced", "master", ...): a concrete model,
whether reasoning is enabled, and a base credit price per chapter. Linked
reference chapters are billed on top, estimated from their character count
and the model's input token price.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from quillstream.config import Settings, settings
from quillstream.schemas.ai import ImageSize


@dataclass(frozen=True)
class TextModelTier:
    id: str
    name: str
    model: str
    credits: int
    thinking: bool
    input_price_per_million: float
    description: str = ""


@dataclass(frozen=True)
class CardModelTier:
    id: str
    name: str
    model: str
    credits: int
    description: str = ""


DEFAULT_TEXT_TIER = "balanced"
DEFAULT_CARD_TIER = "fast"

TEXT_TIERS: Mapping[str, TextModelTier] = MappingProxyType(
    {
        tier.id: tier
        for tier in (
            TextModelTier("fast", "Fast", "gemini-2.5-flash-lite", 10, False, 0.20,
                          "Fastest and cheapest"),
            TextModelTier("balanced", "Balanced", "gemini-2.5-flash", 24, False, 0.60,
                          "Best value for everyday writing"),
            TextModelTier("thinking", "Thinking", "gemini-2.5-flash", 33, True, 0.60,
                          "Deep reasoning for tighter plot logic"),
            TextModelTier("pro", "Pro", "gemini-2.5-pro", 97, False, 2.50,
                          "High quality output for complex plots"),
            TextModelTier("master", "Master", "gemini-2.5-pro", 131, True, 2.50,
                          "Pro quality with deep reasoning"),
            TextModelTier("flagship", "Flagship", "gemini-3-pro-preview", 118, False, 4.00,
                          "Newest and most capable model"),
            TextModelTier("ultimate", "Ultimate", "gemini-3-pro-preview", 159, True, 4.00,
                          "Flagship with deep reasoning"),
        )
    }
)

CARD_TIERS: Mapping[str, CardModelTier] = MappingProxyType(
    {
        tier.id: tier
        for tier in (
            CardModelTier("fast", "Fast", "gemini-2.5-flash-lite", 1, "Quick everyday cards"),
            CardModelTier("balanced", "Balanced", "gemini-2.5-flash", 3, "Richer detail"),
            CardModelTier("pro", "Pro", "gemini-2.5-pro", 10, "Professional world-building"),
        )
    }
)

IMAGE_CREDITS: Mapping[ImageSize, int] = MappingProxyType({"1K": 79, "2K": 300, "4K": 380})

# Passage rewrites are billed per started thousand characters of input
REWRITE_CREDITS_PER_1K_CHARS = 2


def compute_max_tokens(word_count: int, thinking_budget: int | None = None) -> int:
    """Output cap for a chapter: two tokens per requested word plus reasoning room."""
    return word_count * 2 + (thinking_budget or 0)


class PricingTable:
    """Tier lookup and cost arithmetic with configurable conversion constants."""

    def __init__(
        self,
        text_tiers: Mapping[str, TextModelTier] = TEXT_TIERS,
        card_tiers: Mapping[str, CardModelTier] = CARD_TIERS,
        image_credits: Mapping[ImageSize, int] = IMAGE_CREDITS,
        *,
        credit_to_cny: float = 0.0068,
        usd_to_cny: float = 7.2,
        chars_to_tokens: float = 2.0,
    ) -> None:
        self.text_tiers = text_tiers
        self.card_tiers = card_tiers
        self.image_credits = image_credits
        self.credit_to_cny = credit_to_cny
        self.usd_to_cny = usd_to_cny
        self.chars_to_tokens = chars_to_tokens

    @classmethod
    def from_settings(cls, config: Settings) -> "PricingTable":
        return cls(
            credit_to_cny=config.credit_to_cny,
            usd_to_cny=config.usd_to_cny,
            chars_to_tokens=config.chars_to_tokens,
        )

    def text_tier(self, tier_id: str | None) -> TextModelTier:
        """Resolve a tier id; unknown ids fall back to the default tier."""
        return self.text_tiers.get(tier_id or DEFAULT_TEXT_TIER) or self.text_tiers[
            DEFAULT_TEXT_TIER
        ]

    def card_tier(self, tier_id: str | None) -> CardModelTier:
        return self.card_tiers.get(tier_id or DEFAULT_CARD_TIER) or self.card_tiers[
            DEFAULT_CARD_TIER
        ]

    def linked_chapters_credits(self, char_count: int, tier: TextModelTier) -> int:
        """Credits for feeding ``char_count`` characters of reference text as input."""
        if char_count <= 0:
            return 0
        tokens = char_count * self.chars_to_tokens
        cost_cny = tokens / 1_000_000 * tier.input_price_per_million * self.usd_to_cny
        return math.ceil(cost_cny / self.credit_to_cny)

    def chapter_cost(self, tier: TextModelTier, linked_chars: int = 0) -> int:
        return tier.credits + self.linked_chapters_credits(linked_chars, tier)

    def image_cost(self, size: ImageSize) -> int:
        return self.image_credits[size]

    def rewrite_cost(self, char_count: int) -> int:
        return max(1, math.ceil(char_count / 1000)) * REWRITE_CREDITS_PER_1K_CHARS


def get_pricing_table() -> PricingTable:
    return PricingTable.from_settings(settings)
