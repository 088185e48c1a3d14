"""Context assembly for chapter generation.

Semantic search runs first: cards and chapter summaries are searched in
parallel, and a failure in either search is tolerated. When a branch comes
back empty (including after exclusions or on failure) it falls back to a
deterministic path:

- entities: cards whose trigger words occur in the query text
- summaries: the most recent chapter summaries, oldest first

Exclusions chosen by the user apply to every path. Semantic entity hits
are enriched with full card attributes in one bulk lookup.
"""

import asyncio
import html
import re
import uuid
from collections.abc import Iterable, Sequence

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quillstream.config import settings
from quillstream.database import get_session_maker
from quillstream.logging_config import get_logger
from quillstream.models.novel import Card, Chapter, ChapterSummary, Novel
from quillstream.schemas.context import (
    CardHit,
    ContextBundle,
    LinkedChapter,
    MatchedEntity,
    PriorEventSummary,
    SummaryHit,
)
from quillstream.services.retrieval import RetrievalClient, get_retrieval_client

logger = get_logger(__name__)

_HTML_TAG = re.compile(r"<[^>]+>")
TRUNCATION_MARKER = "...(truncated)"


def entity_from_card(card: Card, score: float | None = None) -> MatchedEntity:
    return MatchedEntity(
        id=card.id,
        name=card.name,
        category=card.category.value,
        description=card.description,
        attributes=dict(card.attributes or {}),
        score=score,
    )


def match_cards_by_triggers(text: str, cards: Iterable[Card]) -> list[Card]:
    """Cards with at least one trigger word occurring in ``text``.

    Matching is a literal, case-sensitive substring test; card order is kept.
    """
    matched: list[Card] = []
    for card in cards:
        triggers = [t for t in (card.triggers or []) if t and t.strip()]
        if any(trigger in text for trigger in triggers):
            matched.append(card)
    return matched


def prepare_linked_chapters(
    chapters: Sequence[LinkedChapter], max_chars: int
) -> list[LinkedChapter]:
    """Strip markup from reference chapters and cap their length."""
    prepared = []
    for chapter in chapters:
        content = html.unescape(_HTML_TAG.sub("", chapter.content)).strip()
        if len(content) > max_chars:
            content = content[:max_chars] + TRUNCATION_MARKER
        prepared.append(LinkedChapter(title=chapter.title, content=content))
    return prepared


class NovelContextStore:
    """Database reads used during context assembly."""

    def __init__(
        self, session_maker: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        self._session_maker = session_maker or get_session_maker()

    async def novel_summary(self, novel_id: uuid.UUID) -> str | None:
        async with self._session_maker() as db:
            result = await db.execute(select(Novel.summary).where(Novel.id == novel_id))
            return result.scalar_one_or_none()

    async def trigger_cards(self, novel_id: uuid.UUID) -> list[Card]:
        """All cards of the novel that declare trigger words."""
        async with self._session_maker() as db:
            result = await db.execute(
                select(Card).where(Card.novel_id == novel_id).order_by(Card.created_at)
            )
            return [card for card in result.scalars().all() if card.triggers]

    async def cards_by_ids(
        self, novel_id: uuid.UUID, card_ids: Sequence[uuid.UUID]
    ) -> dict[uuid.UUID, Card]:
        if not card_ids:
            return {}
        async with self._session_maker() as db:
            result = await db.execute(
                select(Card).where(Card.novel_id == novel_id, Card.id.in_(card_ids))
            )
            return {card.id: card for card in result.scalars().all()}

    async def recent_summaries(
        self,
        novel_id: uuid.UUID,
        limit: int,
        before_chapter_id: uuid.UUID | None = None,
    ) -> list[ChapterSummary]:
        """Latest summaries, newest first, optionally only before a chapter."""
        async with self._session_maker() as db:
            query = select(ChapterSummary).where(ChapterSummary.novel_id == novel_id)
            if before_chapter_id is not None:
                current = await db.execute(
                    select(Chapter.number).where(
                        Chapter.id == before_chapter_id, Chapter.novel_id == novel_id
                    )
                )
                current_number = current.scalar_one_or_none()
                if current_number is not None:
                    query = query.where(ChapterSummary.chapter_number < current_number)
            result = await db.execute(
                query.order_by(ChapterSummary.chapter_number.desc()).limit(limit)
            )
            return list(result.scalars().all())


class ContextAssembler:
    """Builds the ``ContextBundle`` for one chapter request."""

    def __init__(
        self,
        retrieval: RetrievalClient,
        store: NovelContextStore,
        *,
        min_query_length: int = 10,
        card_top_k: int = 8,
        card_threshold: float = 0.4,
        summary_top_k: int = 5,
        summary_threshold: float = 0.4,
        recent_summary_limit: int = 10,
        linked_chapter_max_chars: int = 3000,
    ) -> None:
        self._retrieval = retrieval
        self._store = store
        self.min_query_length = min_query_length
        self.card_top_k = card_top_k
        self.card_threshold = card_threshold
        self.summary_top_k = summary_top_k
        self.summary_threshold = summary_threshold
        self.recent_summary_limit = recent_summary_limit
        self.linked_chapter_max_chars = linked_chapter_max_chars

    async def assemble(
        self,
        novel_id: uuid.UUID,
        query_text: str,
        *,
        excluded_card_ids: Iterable[uuid.UUID] = (),
        excluded_summary_ids: Iterable[uuid.UUID] = (),
        linked_chapters: Sequence[LinkedChapter] = (),
        current_chapter_id: uuid.UUID | None = None,
    ) -> ContextBundle:
        """Gather context for a generation request.

        Args:
            novel_id: Novel being written.
            query_text: Chapter plot and story background joined by a newline.
            excluded_card_ids: Cards the user removed from context.
            excluded_summary_ids: Summaries the user removed from context.
            linked_chapters: Reference chapters the user attached explicitly.
            current_chapter_id: Chapter being written, to limit prior events.

        Returns:
            The assembled context. Never raises for missing or failed
            retrieval; those paths degrade to fallbacks.
        """
        linked = prepare_linked_chapters(linked_chapters, self.linked_chapter_max_chars)
        query = query_text.strip()
        if len(query) <= self.min_query_length:
            logger.info("Query too short for retrieval", novel_id=str(novel_id), length=len(query))
            return ContextBundle(linked_chapters=linked)

        excluded_cards = set(excluded_card_ids)
        excluded_summaries = set(excluded_summary_ids)

        card_result, summary_result = await asyncio.gather(
            self._retrieval.search_cards(
                novel_id, query, top_k=self.card_top_k, threshold=self.card_threshold
            ),
            self._retrieval.search_summaries(
                novel_id,
                query,
                top_k=self.summary_top_k,
                threshold=self.summary_threshold,
                before_chapter_id=current_chapter_id,
            ),
            return_exceptions=True,
        )

        card_hits = self._successful(card_result, "cards", novel_id)
        summary_hits = self._successful(summary_result, "summaries", novel_id)
        card_hits = [hit for hit in card_hits if hit.id not in excluded_cards]
        summary_hits = [hit for hit in summary_hits if hit.id not in excluded_summaries]

        if card_hits:
            entities = await self._enrich(novel_id, card_hits)
            entity_source = "semantic"
        else:
            entities = await self._trigger_fallback(novel_id, query, excluded_cards)
            entity_source = "trigger" if entities else "none"

        if summary_hits:
            summaries = [
                PriorEventSummary(
                    id=hit.id,
                    chapter_id=hit.chapter_id,
                    chapter_title=hit.chapter_title,
                    summary=hit.summary,
                )
                for hit in summary_hits
            ]
            summary_source = "semantic"
        else:
            summaries = await self._recent_fallback(
                novel_id, excluded_summaries, current_chapter_id
            )
            summary_source = "recent" if summaries else "none"

        novel_summary = await self._novel_summary(novel_id)

        logger.info(
            "Context assembled",
            novel_id=str(novel_id),
            entity_source=entity_source,
            entity_count=len(entities),
            summary_source=summary_source,
            summary_count=len(summaries),
            linked_chapter_count=len(linked),
        )
        return ContextBundle(
            novel_summary=novel_summary,
            entities=entities,
            summaries=summaries,
            linked_chapters=linked,
            entity_source=entity_source,
            summary_source=summary_source,
        )

    @staticmethod
    def _successful(
        result: list | BaseException, branch: str, novel_id: uuid.UUID
    ) -> list:
        if isinstance(result, BaseException):
            logger.warning(
                "Semantic search failed; using fallback",
                branch=branch,
                novel_id=str(novel_id),
                error=str(result),
            )
            return []
        return result

    async def _enrich(
        self, novel_id: uuid.UUID, hits: list[CardHit]
    ) -> list[MatchedEntity]:
        try:
            cards = await self._store.cards_by_ids(novel_id, [hit.id for hit in hits])
        except SQLAlchemyError as e:
            logger.warning("Card attribute lookup failed", novel_id=str(novel_id), error=str(e))
            cards = {}

        entities = []
        for hit in hits:
            card = cards.get(hit.id)
            if card is not None:
                entities.append(entity_from_card(card, score=hit.score))
            else:
                entities.append(
                    MatchedEntity(
                        id=hit.id,
                        name=hit.name,
                        category=hit.category,
                        description=hit.description,
                        score=hit.score,
                    )
                )
        return entities

    async def _trigger_fallback(
        self, novel_id: uuid.UUID, query: str, excluded: set[uuid.UUID]
    ) -> list[MatchedEntity]:
        try:
            cards = await self._store.trigger_cards(novel_id)
        except SQLAlchemyError as e:
            logger.warning("Trigger card lookup failed", novel_id=str(novel_id), error=str(e))
            return []
        candidates = [card for card in cards if card.id not in excluded]
        return [entity_from_card(card) for card in match_cards_by_triggers(query, candidates)]

    async def _recent_fallback(
        self,
        novel_id: uuid.UUID,
        excluded: set[uuid.UUID],
        current_chapter_id: uuid.UUID | None,
    ) -> list[PriorEventSummary]:
        try:
            rows = await self._store.recent_summaries(
                novel_id, self.recent_summary_limit, before_chapter_id=current_chapter_id
            )
        except SQLAlchemyError as e:
            logger.warning("Recent summary lookup failed", novel_id=str(novel_id), error=str(e))
            return []
        return [
            PriorEventSummary(
                id=row.id,
                chapter_id=row.chapter_id,
                chapter_title=row.chapter_title,
                summary=row.summary,
            )
            for row in reversed(rows)
            if row.id not in excluded
        ]

    async def _novel_summary(self, novel_id: uuid.UUID) -> str | None:
        try:
            return await self._store.novel_summary(novel_id)
        except SQLAlchemyError as e:
            logger.warning("Novel summary lookup failed", novel_id=str(novel_id), error=str(e))
            return None


def get_context_assembler() -> ContextAssembler:
    return ContextAssembler(
        get_retrieval_client(),
        NovelContextStore(),
        min_query_length=settings.context_min_query_length,
        card_top_k=settings.context_card_top_k,
        card_threshold=settings.context_card_threshold,
        summary_top_k=settings.context_summary_top_k,
        summary_threshold=settings.context_summary_threshold,
        recent_summary_limit=settings.context_recent_summary_limit,
        linked_chapter_max_chars=settings.linked_chapter_max_chars,
    )
