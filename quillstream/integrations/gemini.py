"""Gemini text and image adapters (google-genai SDK).

Reasoning on Gemini thinking models cannot be switched off entirely:
Gemini 2.5 takes a token budget (minimum 128), Gemini 3 takes a discrete
thinking level. Reasoning text arrives in response parts flagged with
``thought=True``.
"""

import base64
from collections.abc import AsyncIterator
from typing import Any

from google import genai

from quillstream.schemas.ai import (
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

DEFAULT_THINKING_BUDGET = 2000
MIN_THINKING_BUDGET = 128

_GEMINI3_TEMPERATURE = 1.0
_DEFAULT_TEMPERATURE = 0.8


def _is_gemini3(model: str) -> bool:
    return model.startswith("gemini-3")


def _usage_from_metadata(metadata: Any) -> TokenUsage:
    return TokenUsage(
        input_tokens=metadata.prompt_token_count or 0,
        output_tokens=metadata.candidates_token_count or 0,
        thinking_tokens=metadata.thoughts_token_count,
        cached_tokens=metadata.cached_content_token_count,
        total_tokens=metadata.total_token_count or 0,
    )


def _response_parts(response: Any) -> list[Any]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    content = candidates[0].content
    if content is None or not content.parts:
        return []
    return list(content.parts)


class GeminiTextProvider(BaseTextProvider):
    """Text generation through ``client.aio.models``."""

    name = ProviderName.GEMINI

    def __init__(self, client: genai.Client) -> None:
        self._client = client

    def _thinking_config(self, request: UnifiedGenerateRequest) -> dict[str, Any] | None:
        if not self.capabilities.supports_thinking(request.model):
            return None

        gemini3 = _is_gemini3(request.model)
        options = request.thinking

        if options is not None and options.enabled:
            include = (
                options.include_in_response
                if options.include_in_response is not None
                else True
            )
            if gemini3:
                return {
                    "thinking_level": (options.level or "high").upper(),
                    "include_thoughts": include,
                }
            budget = options.budget if options.budget is not None else DEFAULT_THINKING_BUDGET
            return {
                "thinking_budget": max(budget, MIN_THINKING_BUDGET),
                "include_thoughts": include,
            }

        # Reasoning stays on at its minimum; just keep it out of the response
        if gemini3:
            return {"thinking_level": "LOW", "include_thoughts": False}
        return {"thinking_budget": MIN_THINKING_BUDGET, "include_thoughts": False}

    def build_config(self, request: UnifiedGenerateRequest) -> dict[str, Any]:
        """Translate a unified request into a ``GenerateContentConfig`` dict."""
        config: dict[str, Any] = {}
        if request.system_prompt:
            config["system_instruction"] = request.system_prompt

        if request.temperature is not None:
            config["temperature"] = request.temperature
        else:
            config["temperature"] = (
                _GEMINI3_TEMPERATURE if _is_gemini3(request.model) else _DEFAULT_TEMPERATURE
            )

        if request.max_tokens:
            config["max_output_tokens"] = request.max_tokens
        if request.json_mode:
            config["response_mime_type"] = "application/json"

        thinking_config = self._thinking_config(request)
        if thinking_config is not None:
            config["thinking_config"] = thinking_config

        config.update(request.native_overrides)
        return config

    async def _generate(self, request: UnifiedGenerateRequest) -> UnifiedTextResult:
        response = await self._client.aio.models.generate_content(
            model=request.model,
            contents=request.user_prompt,
            config=self.build_config(request),
        )

        content: list[str] = []
        thinking: list[str] = []
        for part in _response_parts(response):
            if not part.text:
                continue
            (thinking if part.thought else content).append(part.text)

        finish_reason = None
        if response.candidates and response.candidates[0].finish_reason is not None:
            reason = response.candidates[0].finish_reason
            finish_reason = getattr(reason, "value", str(reason))

        return UnifiedTextResult(
            content="".join(content),
            thinking="".join(thinking) or None,
            usage=(
                _usage_from_metadata(response.usage_metadata)
                if response.usage_metadata
                else None
            ),
            finish_reason=finish_reason,
        )

    async def _stream(
        self, request: UnifiedGenerateRequest
    ) -> AsyncIterator[ContentChunk | ThinkingChunk | TokenUsage]:
        stream = await self._client.aio.models.generate_content_stream(
            model=request.model,
            contents=request.user_prompt,
            config=self.build_config(request),
        )
        async for chunk in stream:
            # Usage may be attached to any chunk; later snapshots supersede
            if chunk.usage_metadata:
                yield _usage_from_metadata(chunk.usage_metadata)
            for part in _response_parts(chunk):
                if not part.text:
                    continue
                if part.thought:
                    yield ThinkingChunk(text=part.text)
                else:
                    yield ContentChunk(text=part.text)


class GeminiImageProvider(BaseImageProvider):
    """Image generation with Imagen or Gemini native image models."""

    name = ProviderName.GEMINI

    def __init__(self, client: genai.Client) -> None:
        self._client = client

    async def _generate(
        self, request: ImageGenerateRequest, model: str
    ) -> UnifiedImageResult:
        width, height = request.dimensions

        if model.startswith("imagen-"):
            response = await self._client.aio.models.generate_images(
                model=model,
                prompt=request.prompt,
                config={
                    "number_of_images": 1,
                    "aspect_ratio": request.aspect_ratio,
                    **request.native_overrides,
                },
            )
            generated = response.generated_images or []
            if not generated or generated[0].image is None or not generated[0].image.image_bytes:
                raise AIProviderError(self.name, "Imagen returned no image")
            image = generated[0].image
            return UnifiedImageResult(
                image_base64=base64.b64encode(image.image_bytes).decode("ascii"),
                mime_type=image.mime_type or "image/png",
                width=width,
                height=height,
            )

        response = await self._client.aio.models.generate_content(
            model=model,
            contents=request.prompt,
            config={
                "response_modalities": ["TEXT", "IMAGE"],
                "image_config": {
                    "aspect_ratio": request.aspect_ratio,
                    "image_size": request.size,
                },
                **request.native_overrides,
            },
        )
        for part in _response_parts(response):
            inline = part.inline_data
            if inline is not None and inline.data:
                return UnifiedImageResult(
                    image_base64=base64.b64encode(inline.data).decode("ascii"),
                    mime_type=inline.mime_type or "image/png",
                    width=width,
                    height=height,
                    usage=(
                        _usage_from_metadata(response.usage_metadata)
                        if response.usage_metadata
                        else None
                    ),
                )
        raise AIProviderError(self.name, "Gemini returned no image data")
