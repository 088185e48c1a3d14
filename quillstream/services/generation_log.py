"""Persistence of completed generations.

Writing the record is best-effort: the client already has its content, so
a failed insert is logged and otherwise ignored.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quillstream.database import get_session_maker
from quillstream.logging_config import get_logger
from quillstream.models.generation_log import GenerationLog
from quillstream.schemas.ai import TokenUsage
from quillstream.schemas.generation import TokenUsageSummary

logger = get_logger(__name__)


@dataclass
class GenerationRecordData:
    """Everything stored for one finished chapter generation."""

    user_id: uuid.UUID
    novel_id: uuid.UUID | None
    tier: str
    model: str
    provider: str
    thinking_enabled: bool
    credits_consumed: int
    chapter_plot: str
    usage: TokenUsage
    generated_content: str
    story_background: str | None = None
    writing_style: str | None = None
    character_relations: str | None = None
    linked_card_names: list[str] = field(default_factory=list)
    matched_card_names: list[str] = field(default_factory=list)
    context_meta: dict[str, Any] = field(default_factory=dict)
    thinking: str | None = None


class GenerationRecorder:
    """Writes ``GenerationLog`` rows and aggregates them per user."""

    def __init__(
        self, session_maker: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        self._session_maker = session_maker or get_session_maker()

    async def record(self, data: GenerationRecordData) -> bool:
        """Persist one generation. Returns False (after logging) on failure."""
        try:
            async with self._session_maker() as db:
                db.add(
                    GenerationLog(
                        user_id=data.user_id,
                        novel_id=data.novel_id,
                        tier=data.tier,
                        model=data.model,
                        provider=data.provider,
                        thinking_enabled=data.thinking_enabled,
                        credits_consumed=data.credits_consumed,
                        story_background=data.story_background,
                        chapter_plot=data.chapter_plot,
                        writing_style=data.writing_style,
                        character_relations=data.character_relations,
                        linked_card_names=data.linked_card_names,
                        matched_card_names=data.matched_card_names,
                        context_meta=data.context_meta,
                        input_tokens=data.usage.input_tokens,
                        output_tokens=data.usage.output_tokens,
                        thinking_tokens=data.usage.thinking_tokens,
                        cached_tokens=data.usage.cached_tokens,
                        total_tokens=data.usage.total_tokens,
                        thinking=data.thinking,
                        generated_content=data.generated_content,
                    )
                )
                await db.commit()
        except Exception as e:
            logger.error(
                "Failed to save generation record",
                user_id=str(data.user_id),
                novel_id=str(data.novel_id),
                error=str(e),
            )
            return False
        return True

    async def usage_summary(self, user_id: uuid.UUID) -> TokenUsageSummary:
        async with self._session_maker() as db:
            result = await db.execute(
                select(
                    func.count(GenerationLog.id),
                    func.coalesce(func.sum(GenerationLog.input_tokens), 0),
                    func.coalesce(func.sum(GenerationLog.output_tokens), 0),
                    func.coalesce(func.sum(GenerationLog.thinking_tokens), 0),
                    func.coalesce(func.sum(GenerationLog.total_tokens), 0),
                    func.coalesce(func.sum(GenerationLog.credits_consumed), 0),
                ).where(GenerationLog.user_id == user_id)
            )
            count, input_tokens, output_tokens, thinking, total, credits = result.one()

        return TokenUsageSummary(
            generation_count=count,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            thinking_tokens=thinking,
            total_tokens=total,
            credits_consumed=credits,
        )


def get_generation_recorder() -> GenerationRecorder:
    return GenerationRecorder()
