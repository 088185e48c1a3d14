"""Static capability registry for AI backends.

Declares, per backend, which features exist (streaming, images, reasoning,
JSON mode), token limits, known model ids, and defaults. The registry is
read-only; adapters and the factory consult it, nothing mutates it.
"""

import enum
from dataclasses import dataclass, field
from typing import Literal

from quillstream.config import settings

ThinkingStyle = Literal["budget", "level", "auto"]


class ProviderName(str, enum.Enum):
    """Supported AI backends."""

    GEMINI = "gemini"
    VOLCENGINE = "volcengine"
    OPENAI = "openai"
    CLAUDE = "claude"


@dataclass(frozen=True)
class ProviderCapabilities:
    """What one backend can do.

    ``thinking_style`` describes how reasoning is controlled: by token
    budget, by discrete level, or automatically by model choice. Gemini
    declares ``budget`` and its adapter switches to levels for Gemini 3.
    """

    name: ProviderName
    text: bool
    text_stream: bool
    image: bool
    thinking: bool
    thinking_style: ThinkingStyle | None
    json_mode: bool
    image_input: bool
    max_context_tokens: int
    max_output_tokens: int
    default_text_model: str
    default_image_model: str | None
    text_models: tuple[str, ...] = field(default_factory=tuple)
    image_models: tuple[str, ...] = field(default_factory=tuple)
    thinking_models: tuple[str, ...] = field(default_factory=tuple)

    def supports_thinking(self, model: str) -> bool:
        return self.thinking and model in self.thinking_models

    def owns_model(self, model: str) -> bool:
        return model in self.text_models or model in self.image_models


PROVIDER_CAPABILITIES: dict[ProviderName, ProviderCapabilities] = {
    ProviderName.GEMINI: ProviderCapabilities(
        name=ProviderName.GEMINI,
        text=True,
        text_stream=True,
        image=True,
        thinking=True,
        thinking_style="budget",
        json_mode=True,
        image_input=True,
        max_context_tokens=1_000_000,
        max_output_tokens=65_536,
        default_text_model="gemini-2.5-flash",
        default_image_model="gemini-3-pro-image-preview",
        text_models=(
            "gemini-2.5-flash-lite",
            "gemini-2.5-flash",
            "gemini-2.5-pro",
            "gemini-3-pro-preview",
            "gemini-2.0-flash",
        ),
        image_models=(
            "gemini-3-pro-image-preview",
            "imagen-3.0-generate-002",
        ),
        thinking_models=(
            "gemini-2.5-flash",
            "gemini-2.5-pro",
            "gemini-3-pro-preview",
            "gemini-3-pro-image-preview",
        ),
    ),
    ProviderName.VOLCENGINE: ProviderCapabilities(
        name=ProviderName.VOLCENGINE,
        text=True,
        text_stream=True,
        image=True,
        thinking=True,
        thinking_style="auto",
        json_mode=False,
        image_input=False,
        max_context_tokens=128_000,
        max_output_tokens=32_768,
        default_text_model="doubao-seed-1-6-251015",
        default_image_model="doubao-seedream-4-5-251128",
        text_models=(
            "doubao-seed-1-6-251015",
            "doubao-1-5-pro-256k-250115",
            "doubao-1-5-pro-32k-250115",
        ),
        image_models=("doubao-seedream-4-5-251128",),
        thinking_models=("doubao-seed-1-6-251015",),
    ),
    ProviderName.OPENAI: ProviderCapabilities(
        name=ProviderName.OPENAI,
        text=True,
        text_stream=True,
        image=True,
        thinking=False,
        thinking_style=None,
        json_mode=True,
        image_input=True,
        max_context_tokens=128_000,
        max_output_tokens=16_384,
        default_text_model="gpt-4o",
        default_image_model="dall-e-3",
        text_models=("gpt-4o", "gpt-4o-mini", "gpt-4-turbo"),
        image_models=("dall-e-3",),
    ),
    ProviderName.CLAUDE: ProviderCapabilities(
        name=ProviderName.CLAUDE,
        text=True,
        text_stream=True,
        image=False,
        thinking=True,
        thinking_style="budget",
        json_mode=False,
        image_input=True,
        max_context_tokens=200_000,
        max_output_tokens=64_000,
        default_text_model="claude-sonnet-4-5-20250929",
        default_image_model=None,
        text_models=(
            "claude-sonnet-4-5-20250929",
            "claude-opus-4-1-20250805",
            "claude-haiku-4-5-20251001",
        ),
        thinking_models=(
            "claude-sonnet-4-5-20250929",
            "claude-opus-4-1-20250805",
            "claude-haiku-4-5-20251001",
        ),
    ),
}

# Checked in order after exact model-list matches
_MODEL_PREFIXES: tuple[tuple[str, ProviderName], ...] = (
    ("gemini-", ProviderName.GEMINI),
    ("imagen-", ProviderName.GEMINI),
    ("doubao-", ProviderName.VOLCENGINE),
    ("gpt-", ProviderName.OPENAI),
    ("dall-e", ProviderName.OPENAI),
    ("o1", ProviderName.OPENAI),
    ("o3", ProviderName.OPENAI),
    ("o4", ProviderName.OPENAI),
    ("claude-", ProviderName.CLAUDE),
)


def capabilities_of(provider: ProviderName | str) -> ProviderCapabilities:
    """Return the capability record for a backend.

    Raises:
        ValueError: If ``provider`` is not a known backend name.
    """
    return PROVIDER_CAPABILITIES[ProviderName(provider)]


def supports_thinking(provider: ProviderName | str, model: str) -> bool:
    """True when ``model`` on ``provider`` is a reasoning model."""
    return capabilities_of(provider).supports_thinking(model)


def thinking_style(provider: ProviderName | str) -> ThinkingStyle | None:
    return capabilities_of(provider).thinking_style


def infer_provider(model: str, default: ProviderName | str | None = None) -> ProviderName:
    """Work out which backend serves a model id.

    Declared model lists win, then well-known id prefixes, then ``default``.

    Args:
        model: Model identifier, e.g. "gemini-2.5-pro" or "doubao-seed-1-6-251015".
        default: Backend to use when nothing matches; the configured default
            text backend when omitted.
    """
    for caps in PROVIDER_CAPABILITIES.values():
        if caps.owns_model(model):
            return caps.name

    for prefix, provider in _MODEL_PREFIXES:
        if model.startswith(prefix):
            return provider

    return ProviderName(default or settings.ai_default_text_provider)
