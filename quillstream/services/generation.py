"""Chapter generation orchestrator.

A request moves through two phases:

1. ``prepare`` (synchronous, before any bytes are sent): per-user rate
   limit, input sanitising, cost calculation, credit pre-check, and the
   atomic debit. Failures here are HTTP errors and nothing is charged.
2. ``stream`` (after the debit): emits the credit event first, assembles
   context, selects a backend, relays its chunks as wire events, and ends
   with exactly one ``done`` or ``error`` event. Failures here are
   reported in-band and credits are not refunded.

Wire events are JSON objects framed as server-sent events
(``data: {...}\\n\\n``).
"""

import json
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, status

from quillstream.config import Settings, settings
from quillstream.core.rate_limiter import SlidingWindowRateLimiter, enforce_rate_limit
from quillstream.core.security import sanitize_prompt_input
from quillstream.logging_config import get_logger
from quillstream.schemas.ai import (
    ContentChunk,
    DoneChunk,
    ErrorChunk,
    ThinkingChunk,
    ThinkingOptions,
    TokenUsage,
    UnifiedGenerateRequest,
    UsageChunk,
)
from quillstream.schemas.context import ContextBundle
from quillstream.schemas.generation import GenerateChapterRequest
from quillstream.services.ai_client import ProviderFactory
from quillstream.services.context_assembler import ContextAssembler
from quillstream.services.credits import CreditLedger, insufficient_credits_exception
from quillstream.services.generation_log import GenerationRecordData, GenerationRecorder
from quillstream.services.pricing import PricingTable, TextModelTier, compute_max_tokens
from quillstream.services.prompts import (
    build_chapter_system_prompt,
    build_chapter_user_prompt,
)

logger = get_logger(__name__)

CREDIT_CATEGORY = "ai_chapter"
GENERIC_STREAM_ERROR = "Generation failed, please try again later"


def format_stream_event(event: dict[str, Any]) -> str:
    """Frame one wire event."""
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


@dataclass(frozen=True)
class PreparedGeneration:
    """A request that passed every pre-stream gate and has been charged."""

    user_id: uuid.UUID
    novel_id: uuid.UUID
    request: GenerateChapterRequest  # sanitised
    tier: TextModelTier
    credits_consumed: int
    balance_after: int
    thinking_budget: int | None

    @property
    def max_tokens(self) -> int:
        return compute_max_tokens(self.request.word_count, self.thinking_budget)

    @property
    def query_text(self) -> str:
        return "\n".join(
            part for part in (self.request.chapter_plot, self.request.story_background) if part
        )


class ChapterGenerationOrchestrator:
    """Drives one streaming chapter generation."""

    def __init__(
        self,
        *,
        ledger: CreditLedger,
        assembler: ContextAssembler,
        providers: ProviderFactory,
        recorder: GenerationRecorder,
        rate_limiter: SlidingWindowRateLimiter,
        pricing: PricingTable,
        config: Settings = settings,
    ) -> None:
        self._ledger = ledger
        self._assembler = assembler
        self._providers = providers
        self._recorder = recorder
        self._rate_limiter = rate_limiter
        self._pricing = pricing
        self._config = config

    def sanitize(self, request: GenerateChapterRequest) -> GenerateChapterRequest:
        config = self._config
        return request.model_copy(
            update={
                "story_background": sanitize_prompt_input(
                    request.story_background, config.story_background_max_chars
                )
                or None,
                "chapter_plot": sanitize_prompt_input(
                    request.chapter_plot, config.chapter_plot_max_chars
                ),
                "writing_style": sanitize_prompt_input(
                    request.writing_style, config.writing_style_max_chars
                )
                or None,
                "character_relations": sanitize_prompt_input(
                    request.character_relations, config.character_relations_max_chars
                )
                or None,
            }
        )

    async def prepare(
        self,
        *,
        user_id: uuid.UUID,
        novel_id: uuid.UUID,
        request: GenerateChapterRequest,
    ) -> PreparedGeneration:
        """Run the pre-stream gates and charge the user.

        Raises:
            HTTPException: 429 when rate limited, 402 when credits are
                insufficient or the debit loses a race.
        """
        await enforce_rate_limit(
            self._rate_limiter,
            f"ai:chapter:{user_id}",
            self._config.chapter_rate_limit,
            self._config.rate_limit_window_seconds,
        )

        clean = self.sanitize(request)
        tier = self._pricing.text_tier(clean.ai_model)
        linked_chars = sum(len(chapter.content) for chapter in clean.linked_chapters)
        required = self._pricing.chapter_cost(tier, linked_chars)

        check = await self._ledger.check_sufficient(user_id, required)
        if not check.sufficient:
            raise insufficient_credits_exception(required, check.balance)

        debit = await self._ledger.consume(
            user_id,
            required,
            CREDIT_CATEGORY,
            f"Chapter generation ({tier.name})",
        )
        if not debit.success:
            raise HTTPException(
                status_code=status.HTTP_402_PAYMENT_REQUIRED,
                detail={
                    "message": debit.error or "Credit debit failed",
                    "required": required,
                    "balance": debit.balance,
                },
            )

        return PreparedGeneration(
            user_id=user_id,
            novel_id=novel_id,
            request=clean,
            tier=tier,
            credits_consumed=required,
            balance_after=debit.balance,
            thinking_budget=self._config.thinking_budget if tier.thinking else None,
        )

    def build_request(
        self, prepared: PreparedGeneration, context: ContextBundle
    ) -> UnifiedGenerateRequest:
        request = prepared.request
        if prepared.tier.thinking:
            thinking = ThinkingOptions(
                enabled=True,
                budget=prepared.thinking_budget,
                include_in_response=True,
            )
        else:
            thinking = ThinkingOptions(enabled=False)

        return UnifiedGenerateRequest(
            model=prepared.tier.model,
            system_prompt=build_chapter_system_prompt(
                request.word_count, request.writing_style
            ),
            user_prompt=build_chapter_user_prompt(
                chapter_plot=request.chapter_plot,
                context=context,
                story_background=request.story_background,
                characters=request.characters,
                terms=request.terms,
                character_relations=request.character_relations,
                previous_content=request.previous_content,
            ),
            max_tokens=prepared.max_tokens,
            thinking=thinking,
        )

    async def stream(self, prepared: PreparedGeneration) -> AsyncIterator[str]:
        """Yield framed wire events for a prepared generation."""
        started = time.perf_counter()
        user_id = str(prepared.user_id)

        yield format_stream_event(
            {
                "type": "credit",
                "credits": prepared.credits_consumed,
                "balance": prepared.balance_after,
            }
        )

        content_parts: list[str] = []
        thinking_parts: list[str] = []
        usage: TokenUsage | None = None
        context: ContextBundle | None = None
        provider_name = ""

        try:
            request = prepared.request
            context = await self._assembler.assemble(
                prepared.novel_id,
                prepared.query_text,
                excluded_card_ids=request.excluded_card_ids,
                excluded_summary_ids=request.excluded_summary_ids,
                linked_chapters=request.linked_chapters,
                current_chapter_id=request.chapter_id,
            )
            unified = self.build_request(prepared, context)
            provider = self._providers.text_provider(unified.model)
            provider_name = provider.name.value

            async for chunk in provider.generate_stream(unified):
                if isinstance(chunk, ContentChunk):
                    content_parts.append(chunk.text)
                    yield format_stream_event({"type": "content", "text": chunk.text})
                elif isinstance(chunk, ThinkingChunk):
                    thinking_parts.append(chunk.text)
                    yield format_stream_event({"type": "thinking", "text": chunk.text})
                elif isinstance(chunk, UsageChunk):
                    usage = chunk.usage
                    yield format_stream_event({"type": "usage", "usage": usage.to_wire()})
                elif isinstance(chunk, ErrorChunk):
                    logger.error(
                        "Chapter stream ended with provider error",
                        user_id=user_id,
                        provider=provider_name,
                        error=chunk.message,
                    )
                    yield format_stream_event({"type": "error", "message": chunk.message})
                    return
                elif isinstance(chunk, DoneChunk):
                    break
        except Exception:
            logger.exception(
                "Chapter generation failed mid-stream",
                user_id=user_id,
                novel_id=str(prepared.novel_id),
            )
            yield format_stream_event({"type": "error", "message": GENERIC_STREAM_ERROR})
            return

        yield format_stream_event({"type": "done"})

        content = "".join(content_parts)
        logger.info(
            "Chapter stream completed",
            user_id=user_id,
            tier=prepared.tier.id,
            provider=provider_name,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            content_length=len(content),
            usage=usage.model_dump() if usage else None,
        )

        if usage is not None and context is not None:
            await self._recorder.record(
                GenerationRecordData(
                    user_id=prepared.user_id,
                    novel_id=prepared.novel_id,
                    tier=prepared.tier.id,
                    model=prepared.tier.model,
                    provider=provider_name,
                    thinking_enabled=prepared.tier.thinking,
                    credits_consumed=prepared.credits_consumed,
                    chapter_plot=prepared.request.chapter_plot,
                    story_background=prepared.request.story_background,
                    writing_style=prepared.request.writing_style,
                    character_relations=prepared.request.character_relations,
                    linked_card_names=[
                        *(character.name for character in prepared.request.characters),
                        *(term.name for term in prepared.request.terms),
                    ],
                    matched_card_names=[entity.name for entity in context.entities],
                    context_meta={
                        "entity_source": context.entity_source,
                        "summary_source": context.summary_source,
                        "summary_count": len(context.summaries),
                        "linked_chapter_count": len(context.linked_chapters),
                    },
                    usage=usage,
                    generated_content=content,
                    thinking="".join(thinking_parts) or None,
                )
            )
