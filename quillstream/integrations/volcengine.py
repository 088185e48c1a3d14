"""Volcengine Ark adapters (Doubao text, Seedream images).

Text goes through the OpenAI-compatible chat completions API. Deep
reasoning models (``doubao-seed-*``) reject ``temperature`` and
``max_tokens``, so neither is sent to them; their reasoning arrives as
``reasoning_content`` on each delta. Images use the Ark
``/images/generations`` endpoint directly over httpx.
"""

from collections.abc import AsyncIterator
from typing import Any

import httpx
import openai

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

SEEDREAM_SIZES: dict[AspectRatio, tuple[int, int]] = {
    "1:1": (1024, 1024),
    "3:4": (1728, 2304),
    "4:3": (2304, 1728),
    "16:9": (1920, 1080),
    "9:16": (1080, 1920),
}

# Seedream tops out at 2K; 4K requests use these too
SEEDREAM_SIZES_2K: dict[AspectRatio, tuple[int, int]] = {
    "1:1": (2048, 2048),
    "3:4": (1728, 2304),
    "4:3": (2304, 1728),
    "16:9": (2048, 1152),
    "9:16": (1152, 2048),
}


def _usage_from_completion(usage: Any) -> TokenUsage:
    details = getattr(usage, "completion_tokens_details", None)
    prompt_details = getattr(usage, "prompt_tokens_details", None)
    return TokenUsage(
        input_tokens=usage.prompt_tokens or 0,
        output_tokens=usage.completion_tokens or 0,
        thinking_tokens=getattr(details, "reasoning_tokens", None),
        cached_tokens=getattr(prompt_details, "cached_tokens", None),
        total_tokens=usage.total_tokens or 0,
    )


class VolcengineTextProvider(BaseTextProvider):
    """Doubao chat completions via the OpenAI SDK pointed at Ark."""

    name = ProviderName.VOLCENGINE

    def __init__(self, client: openai.AsyncOpenAI) -> None:
        self._client = client

    def is_reasoning_model(self, model: str) -> bool:
        return self.capabilities.supports_thinking(model) or "seed" in model

    def build_options(self, request: UnifiedGenerateRequest) -> dict[str, Any]:
        """Translate a unified request into chat completion keyword arguments."""
        messages: list[dict[str, str]] = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})

        options: dict[str, Any] = {"model": request.model, "messages": messages}

        if self.is_reasoning_model(request.model):
            if request.thinking is not None:
                options["extra_body"] = {
                    "thinking": {
                        "type": "enabled" if request.thinking.enabled else "disabled"
                    }
                }
        else:
            if request.max_tokens:
                options["max_tokens"] = request.max_tokens
            if request.temperature is not None:
                options["temperature"] = request.temperature

        options.update(request.native_overrides)
        return options

    async def _generate(self, request: UnifiedGenerateRequest) -> UnifiedTextResult:
        completion = await self._client.chat.completions.create(
            **self.build_options(request)
        )
        choice = completion.choices[0] if completion.choices else None
        message = choice.message if choice else None
        return UnifiedTextResult(
            content=(message.content if message else None) or "",
            thinking=getattr(message, "reasoning_content", None) or None,
            usage=_usage_from_completion(completion.usage) if completion.usage else None,
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
            delta = chunk.choices[0].delta if chunk.choices else None
            if delta is not None:
                reasoning = getattr(delta, "reasoning_content", None)
                if reasoning:
                    yield ThinkingChunk(text=reasoning)
                if delta.content:
                    yield ContentChunk(text=delta.content)
            if chunk.usage:
                yield _usage_from_completion(chunk.usage)


class VolcengineImageProvider(BaseImageProvider):
    """Seedream image generation over the Ark REST API."""

    name = ProviderName.VOLCENGINE

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _generate(
        self, request: ImageGenerateRequest, model: str
    ) -> UnifiedImageResult:
        sizes = SEEDREAM_SIZES if request.size == "1K" else SEEDREAM_SIZES_2K
        width, height = sizes[request.aspect_ratio]

        payload: dict[str, Any] = {
            "model": model,
            "prompt": request.prompt,
            "size": f"{width}x{height}",
            "response_format": "b64_json",
            "watermark": False,
            **request.native_overrides,
        }
        response = await self._client.post("/images/generations", json=payload)
        if response.status_code >= 400:
            raise AIProviderError(
                self.name,
                f"Seedream request failed ({response.status_code}): {response.text[:200]}",
            )

        body = response.json()
        data = body.get("data") or []
        if not data or not data[0].get("b64_json"):
            raise AIProviderError(self.name, "Seedream returned no image data")

        usage = None
        if body.get("usage"):
            usage = TokenUsage(
                output_tokens=body["usage"].get("output_tokens", 0),
                total_tokens=body["usage"].get("total_tokens", 0),
            )

        return UnifiedImageResult(
            image_base64=data[0]["b64_json"],
            mime_type="image/jpeg",
            width=width,
            height=height,
            usage=usage,
        )
