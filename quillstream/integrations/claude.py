"""Claude (Anthropic) text adapter.

Extended thinking is enabled with a token budget (minimum 1024). While
thinking is on, the API requires the default temperature and a
``max_tokens`` larger than the budget. Streaming usage is split across
events: input tokens on ``message_start``, output tokens on
``message_delta``.
"""

from collections.abc import AsyncIterator
from typing import Any

import anthropic

from quillstream.logging_config import get_logger
from quillstream.schemas.ai import (
    ContentChunk,
    ThinkingChunk,
    TokenUsage,
    UnifiedGenerateRequest,
    UnifiedTextResult,
)
from quillstream.services.ai_capabilities import ProviderName
from quillstream.services.ai_client import BaseTextProvider

logger = get_logger(__name__)

MIN_THINKING_BUDGET = 1024
DEFAULT_MAX_TOKENS = 4096


class ClaudeTextProvider(BaseTextProvider):
    """Claude Messages API through the Anthropic SDK."""

    name = ProviderName.CLAUDE

    def __init__(self, client: anthropic.AsyncAnthropic) -> None:
        self._client = client

    def build_options(self, request: UnifiedGenerateRequest) -> dict[str, Any]:
        """Translate a unified request into ``messages.create`` keyword arguments."""
        max_tokens = request.max_tokens or DEFAULT_MAX_TOKENS
        kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }
        if request.system_prompt:
            kwargs["system"] = request.system_prompt

        if request.thinking_enabled and self.capabilities.supports_thinking(
            request.model
        ):
            budget = max(request.thinking.budget or MIN_THINKING_BUDGET, MIN_THINKING_BUDGET)
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": budget}
            max_tokens = max(max_tokens, budget + 1)
        elif request.temperature is not None:
            kwargs["temperature"] = min(request.temperature, 1.0)

        kwargs["max_tokens"] = max_tokens
        if request.json_mode:
            logger.debug("Claude has no JSON mode; relying on prompt instructions")

        kwargs.update(request.native_overrides)
        return kwargs

    async def _generate(self, request: UnifiedGenerateRequest) -> UnifiedTextResult:
        try:
            response = await self._client.messages.create(**self.build_options(request))
        except anthropic.AuthenticationError:
            logger.error("Claude API authentication failed during generation")
            raise
        except anthropic.RateLimitError:
            logger.warning("Claude API rate limited during generation")
            raise
        except anthropic.APIConnectionError as e:
            logger.error("Claude API connection error during generation", error=str(e))
            raise

        content: list[str] = []
        thinking: list[str] = []
        for block in response.content or []:
            if block.type == "text":
                content.append(block.text)
            elif block.type == "thinking":
                thinking.append(block.thinking)

        usage = None
        if response.usage:
            usage = TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                cached_tokens=getattr(response.usage, "cache_read_input_tokens", None),
            )

        return UnifiedTextResult(
            content="".join(content),
            thinking="".join(thinking) or None,
            usage=usage,
            finish_reason=response.stop_reason,
        )

    async def _stream(
        self, request: UnifiedGenerateRequest
    ) -> AsyncIterator[ContentChunk | ThinkingChunk | TokenUsage]:
        stream = await self._client.messages.create(
            **self.build_options(request), stream=True
        )

        input_tokens = 0
        cached_tokens: int | None = None
        async for event in stream:
            if event.type == "message_start":
                usage = event.message.usage
                input_tokens = usage.input_tokens or 0
                cached_tokens = getattr(usage, "cache_read_input_tokens", None)
                yield TokenUsage(
                    input_tokens=input_tokens,
                    output_tokens=usage.output_tokens or 0,
                    cached_tokens=cached_tokens,
                )
            elif event.type == "content_block_delta":
                if event.delta.type == "thinking_delta":
                    yield ThinkingChunk(text=event.delta.thinking)
                elif event.delta.type == "text_delta":
                    yield ContentChunk(text=event.delta.text)
            elif event.type == "message_delta" and event.usage is not None:
                yield TokenUsage(
                    input_tokens=input_tokens,
                    output_tokens=event.usage.output_tokens or 0,
                    cached_tokens=cached_tokens,
                )
