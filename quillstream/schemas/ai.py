"""Provider-neutral request, result, and stream chunk types.

Every backend adapter consumes ``UnifiedGenerateRequest`` and produces
either a ``UnifiedTextResult`` or a sequence of ``StreamChunk`` values, so
callers never see a backend's native payloads.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

AspectRatio = Literal["1:1", "3:4", "4:3", "16:9", "9:16"]
ImageSize = Literal["1K", "2K", "4K"]


class ThinkingOptions(BaseModel):
    """Reasoning controls.

    ``budget`` applies to backends with token-budget reasoning, ``level`` to
    backends with discrete effort levels. Backends use whichever they support.
    """

    model_config = ConfigDict(frozen=True)

    enabled: bool
    budget: int | None = Field(default=None, ge=0)
    level: Literal["low", "high"] | None = None
    include_in_response: bool | None = None


class UnifiedGenerateRequest(BaseModel):
    """One text generation request, independent of backend."""

    model_config = ConfigDict(frozen=True)

    # Adapters fall back to their default text model when unset
    model: str | None = None
    user_prompt: str
    system_prompt: str | None = None
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0, le=2)
    json_mode: bool = False
    thinking: ThinkingOptions | None = None
    # Merged last into the backend's native parameters
    native_overrides: dict[str, Any] = Field(default_factory=dict)

    @property
    def thinking_enabled(self) -> bool:
        return bool(self.thinking and self.thinking.enabled)


class TokenUsage(BaseModel):
    """Token accounting for one generation.

    ``total_tokens`` is raised to at least input + output when a backend
    reports a smaller (or no) total.
    """

    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)
    thinking_tokens: int | None = Field(default=None, ge=0)
    cached_tokens: int | None = Field(default=None, ge=0)
    total_tokens: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _normalise_total(self) -> "TokenUsage":
        floor = self.input_tokens + self.output_tokens
        if self.total_tokens < floor:
            self.total_tokens = floor
        return self

    def to_wire(self) -> dict[str, int]:
        """Usage object as sent to clients; absent optional counts are omitted."""
        wire = {
            "promptTokenCount": self.input_tokens,
            "candidatesTokenCount": self.output_tokens,
            "thoughtsTokenCount": self.thinking_tokens,
            "cachedContentTokenCount": self.cached_tokens,
            "totalTokenCount": self.total_tokens,
        }
        return {key: value for key, value in wire.items() if value is not None}


class UnifiedTextResult(BaseModel):
    """Result of a single-shot text generation."""

    content: str
    thinking: str | None = None
    usage: TokenUsage | None = None
    finish_reason: str | None = None


class ContentChunk(BaseModel):
    kind: Literal["content"] = "content"
    text: str


class ThinkingChunk(BaseModel):
    kind: Literal["thinking"] = "thinking"
    text: str


class UsageChunk(BaseModel):
    kind: Literal["usage"] = "usage"
    usage: TokenUsage


class DoneChunk(BaseModel):
    kind: Literal["done"] = "done"


class ErrorChunk(BaseModel):
    kind: Literal["error"] = "error"
    message: str


StreamChunk = Annotated[
    Union[ContentChunk, ThinkingChunk, UsageChunk, DoneChunk, ErrorChunk],
    Field(discriminator="kind"),
]


# Pixel dimensions per (size, aspect ratio); shared by backends that take
# explicit sizes and used to report dimensions for those that do not.
IMAGE_DIMENSIONS: dict[ImageSize, dict[AspectRatio, tuple[int, int]]] = {
    "1K": {
        "1:1": (1024, 1024),
        "3:4": (896, 1152),
        "4:3": (1152, 896),
        "16:9": (1280, 720),
        "9:16": (720, 1280),
    },
    "2K": {
        "1:1": (2048, 2048),
        "3:4": (1728, 2304),
        "4:3": (2304, 1728),
        "16:9": (2560, 1440),
        "9:16": (1440, 2560),
    },
    "4K": {
        "1:1": (4096, 4096),
        "3:4": (3456, 4608),
        "4:3": (4608, 3456),
        "16:9": (5120, 2880),
        "9:16": (2880, 5120),
    },
}


class ImageGenerateRequest(BaseModel):
    """One image generation request, independent of backend."""

    model_config = ConfigDict(frozen=True)

    prompt: str = Field(min_length=1)
    model: str | None = None
    aspect_ratio: AspectRatio = "1:1"
    size: ImageSize = "1K"
    native_overrides: dict[str, Any] = Field(default_factory=dict)

    @property
    def dimensions(self) -> tuple[int, int]:
        return IMAGE_DIMENSIONS[self.size][self.aspect_ratio]


class UnifiedImageResult(BaseModel):
    """A generated image, base64 encoded."""

    image_base64: str
    mime_type: str = "image/png"
    width: int
    height: int
    usage: TokenUsage | None = None
