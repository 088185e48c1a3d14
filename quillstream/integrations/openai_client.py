"""OpenAI text and image adapters.

GPT chat models have no reasoning trace to surface; thinking options are
ignored. JSON mode maps to ``response_format={"type": "json_object"}``.
"""

from collections.abc import AsyncIterator
from typing import Any

import openai

from quillstream.logging_config import get_logger
from quillstream.schemas.ai import (
    AspectRatio,
    ContentChunk,
    ImageGenerateRequest,
    ThinkingChunk,
    TokenUsage,
    UnifiedGenerateRequest,
    UnifiedImageResult,
    UnifiedTextResult,
)
from quillstream.services.ai_capabilities import ProviderName
from quillstream.services.ai_client import (
    AIProviderError,
    BaseImageProvider,
    BaseTextProvider,
)

logger = get_logger(__name__)

# DALL-E 3 only renders three sizes
DALLE_SIZES: dict[AspectRatio, tuple[int, int]] = {
    "1:1": (1024, 1024),
    "3:4": (1024, 1792),
    "9:16": (1024, 1792),
    "4:3": (1792, 1024),
    "16:9": (1792, 1024),
}


def _usage_from_completion(usage: Any) -> TokenUsage:
    prompt_details = getattr(usage, "prompt_tokens_details", None)
    return TokenUsage(
        input_tokens=usage.prompt_tokens or 0,
        output_tokens=usage.completion_tokens or 0,
        cached_tokens=getattr(prompt_details, "cached_tokens", None),
        total_tokens=usage.total_tokens or 0,
    )


class OpenAITextProvider(BaseTextProvider):
    """Chat completions through the OpenAI SDK."""

    name = ProviderName.OPENAI

    def __init__(self, client: openai.AsyncOpenAI) -> None:
        self._client = client

    def build_options(self, request: UnifiedGenerateRequest) -> dict[str, Any]:
        messages: list[dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})

        options: dict[str, Any] = {"model": request.model, "messages": messages}
        if request.max_tokens:
            options["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.json_mode:
            options["response_format"] = {"type": "json_object"}

        options.update(request.native_overrides)
        return options

    async def _generate(self, request: UnifiedGenerateRequest) -> UnifiedTextResult:
        try:
            response = await self._client.chat.completions.create(
                **self.build_options(request)
            )
        except openai.AuthenticationError:
            logger.error("OpenAI API authentication failed during generation")
            raise
        except openai.RateLimitError:
            logger.warning("OpenAI API rate limited during generation")
            raise
        except openai.APIConnectionError as e:
            logger.error("OpenAI API connection error during generation", error=str(e))
            raise

        choice = response.choices[0] if response.choices else None
        return UnifiedTextResult(
            content=(choice.message.content or "") if choice else "",
            usage=_usage_from_completion(response.usage) if response.usage else None,
            finish_reason=choice.finish_reason if choice else None,
        )

    async def _stream(
        self, request: UnifiedGenerateRequest
    ) -> AsyncIterator[ContentChunk | ThinkingChunk | TokenUsage]:
        stream = await self._client.chat.completions.create(
            **self.build_options(request),
            stream=True,
            stream_options={"include_usage": True},
        )
        async for chunk in stream:
            if chunk.choices and chunk.choices[0].delta.content:
                yield ContentChunk(text=chunk.choices[0].delta.content)
            if chunk.usage:
                yield _usage_from_completion(chunk.usage)


class OpenAIImageProvider(BaseImageProvider):
    """DALL-E image generation."""

    name = ProviderName.OPENAI

    def __init__(self, client: openai.AsyncOpenAI) -> None:
        self._client = client

    async def _generate(
        self, request: ImageGenerateRequest, model: str
    ) -> UnifiedImageResult:
        width, height = DALLE_SIZES[request.aspect_ratio]
        params: dict[str, Any] = {
            "model": model,
            "prompt": request.prompt,
            "size": f"{width}x{height}",
            "n": 1,
            "response_format": "b64_json",
        }
        if request.size != "1K":
            params["quality"] = "hd"
        params.update(request.native_overrides)

        response = await self._client.images.generate(**params)
        if not response.data or not response.data[0].b64_json:
            raise AIProviderError(self.name, "OpenAI returned no image data")

        return UnifiedImageResult(
            image_base64=response.data[0].b64_json,
            mime_type="image/png",
            width=width,
            height=height,
        )
