"""Tests for context assembly and its deterministic fallbacks."""

import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from quillstream.models import Card, CardCategory, Chapter, ChapterSummary, Novel
from quillstream.schemas.context import CardHit, LinkedChapter, SummaryHit
from quillstream.services.context_assembler import (
    TRUNCATION_MARKER,
    ContextAssembler,
    NovelContextStore,
    match_cards_by_triggers,
    prepare_linked_chapters,
)
from quillstream.services.retrieval import RetrievalError

NOVEL_ID = uuid.uuid4()
QUERY = "林峰在山顶施展烈焰掌，击退了来犯的黑衣人"


def _card(name, triggers, category=CardCategory.CHARACTER, **attributes) -> Card:
    return Card(
        id=uuid.uuid4(),
        novel_id=NOVEL_ID,
        category=category,
        name=name,
        description=f"{name} description",
        triggers=triggers,
        attributes=attributes,
    )


def _summary(number) -> ChapterSummary:
    return ChapterSummary(
        id=uuid.uuid4(),
        novel_id=NOVEL_ID,
        chapter_id=uuid.uuid4(),
        chapter_number=number,
        chapter_title=f"Chapter {number}",
        summary=f"Events of chapter {number}",
    )


@pytest.fixture
def retrieval():
    client = AsyncMock()
    client.search_cards.return_value = []
    client.search_summaries.return_value = []
    return client


@pytest.fixture
def store():
    fake = AsyncMock(spec=NovelContextStore)
    fake.novel_summary.return_value = "A wandering swordsman seeks revenge."
    fake.trigger_cards.return_value = []
    fake.cards_by_ids.return_value = {}
    fake.recent_summaries.return_value = []
    return fake


class TestTriggerMatching:
    def test_substring_match(self):
        flame = _card("烈焰掌", ["烈焰"], CardCategory.TERM)
        other = _card("寒冰诀", ["寒冰"], CardCategory.TERM)
        assert match_cards_by_triggers(QUERY, [flame, other]) == [flame]

    def test_case_must_match_exactly(self):
        card = _card("Dragon", ["dragon"], CardCategory.TERM)
        assert match_cards_by_triggers("the Dragon roars", [card]) == []
        assert match_cards_by_triggers("a dragon roars", [card]) == [card]

    def test_blank_triggers_never_match(self):
        card = _card("Nobody", ["", "   "])
        assert match_cards_by_triggers("anything at all", [card]) == []


class TestLinkedChapters:
    def test_markup_removed_and_truncated(self):
        [chapter] = prepare_linked_chapters(
            [LinkedChapter(title="Ch 1", content="<p>Hello &amp; welcome</p>" + "x" * 50)],
            max_chars=20,
        )
        assert chapter.content.startswith("Hello & welcome")
        assert chapter.content.endswith(TRUNCATION_MARKER)
        assert len(chapter.content) == 20 + len(TRUNCATION_MARKER)

    def test_short_chapter_kept_whole(self):
        [chapter] = prepare_linked_chapters(
            [LinkedChapter(title="Ch 1", content="Short.")], max_chars=20
        )
        assert chapter.content == "Short."


class TestAssemble:
    async def test_semantic_hits_are_enriched(self, retrieval, store):
        card = _card("林峰", ["林峰"], gender="male", age="19")
        retrieval.search_cards.return_value = [
            CardHit(id=card.id, name="林峰", category="character", score=0.9)
        ]
        summary_id = uuid.uuid4()
        retrieval.search_summaries.return_value = [
            SummaryHit(
                id=summary_id,
                chapter_id=uuid.uuid4(),
                chapter_title="Chapter 3",
                summary="The duel",
                score=0.7,
            )
        ]
        store.cards_by_ids.return_value = {card.id: card}

        bundle = await ContextAssembler(retrieval, store).assemble(NOVEL_ID, QUERY)

        assert bundle.entity_source == "semantic"
        assert bundle.summary_source == "semantic"
        assert bundle.entities[0].attributes == {"gender": "male", "age": "19"}
        assert bundle.entities[0].score == 0.9
        assert [s.id for s in bundle.summaries] == [summary_id]
        assert bundle.novel_summary == "A wandering swordsman seeks revenge."
        store.trigger_cards.assert_not_awaited()
        store.recent_summaries.assert_not_awaited()

    async def test_trigger_fallback_when_index_is_empty(self, retrieval, store):
        flame = _card("烈焰掌", ["烈焰"], CardCategory.TERM)
        store.trigger_cards.return_value = [flame, _card("寒冰诀", ["寒冰"])]

        bundle = await ContextAssembler(retrieval, store).assemble(NOVEL_ID, QUERY)

        assert bundle.entity_source == "trigger"
        assert [e.id for e in bundle.entities] == [flame.id]
        assert bundle.entities[0].score is None

    async def test_search_failure_uses_fallbacks(self, retrieval, store):
        retrieval.search_cards.side_effect = RetrievalError("timeout")
        retrieval.search_summaries.side_effect = RetrievalError("timeout")
        flame = _card("烈焰掌", ["烈焰"], CardCategory.TERM)
        store.trigger_cards.return_value = [flame]
        store.recent_summaries.return_value = [_summary(5), _summary(4)]

        bundle = await ContextAssembler(retrieval, store).assemble(NOVEL_ID, QUERY)

        assert [e.name for e in bundle.entities] == ["烈焰掌"]
        # Newest-first rows come back in reading order
        assert [s.chapter_title for s in bundle.summaries] == ["Chapter 4", "Chapter 5"]
        assert bundle.summary_source == "recent"

    async def test_excluded_cards_never_appear(self, retrieval, store):
        flame = _card("烈焰掌", ["烈焰"], CardCategory.TERM)
        retrieval.search_cards.return_value = [
            CardHit(id=flame.id, name="烈焰掌", category="term", score=0.95)
        ]
        store.trigger_cards.return_value = [flame]

        bundle = await ContextAssembler(retrieval, store).assemble(
            NOVEL_ID, QUERY, excluded_card_ids=[flame.id]
        )

        assert bundle.entities == []
        assert bundle.entity_source == "none"

    async def test_excluded_summaries_filtered_from_both_paths(self, retrieval, store):
        recent = [_summary(2), _summary(1)]
        retrieval.search_summaries.return_value = [
            SummaryHit(
                id=recent[0].id,
                chapter_id=recent[0].chapter_id,
                chapter_title="Chapter 2",
                summary="x",
                score=0.8,
            )
        ]
        store.recent_summaries.return_value = recent

        bundle = await ContextAssembler(retrieval, store).assemble(
            NOVEL_ID, QUERY, excluded_summary_ids=[recent[0].id]
        )

        assert [s.id for s in bundle.summaries] == [recent[1].id]

    async def test_short_query_skips_retrieval(self, retrieval, store):
        bundle = await ContextAssembler(retrieval, store, min_query_length=10).assemble(
            NOVEL_ID,
            "  short  ",
            linked_chapters=[LinkedChapter(title="Ch 1", content="text")],
        )

        retrieval.search_cards.assert_not_awaited()
        store.trigger_cards.assert_not_awaited()
        assert bundle.entities == []
        assert [c.title for c in bundle.linked_chapters] == ["Ch 1"]

    async def test_current_chapter_bounds_prior_events(self, retrieval, store):
        chapter_id = uuid.uuid4()
        await ContextAssembler(retrieval, store, recent_summary_limit=3).assemble(
            NOVEL_ID, QUERY, current_chapter_id=chapter_id
        )

        assert retrieval.search_summaries.call_args.kwargs["before_chapter_id"] == chapter_id
        store.recent_summaries.assert_awaited_once_with(
            NOVEL_ID, 3, before_chapter_id=chapter_id
        )

    async def test_database_errors_degrade_to_empty_context(self, retrieval, store):
        error = OperationalError("SELECT", {}, Exception("db down"))
        store.trigger_cards.side_effect = error
        store.recent_summaries.side_effect = error
        store.novel_summary.side_effect = error

        bundle = await ContextAssembler(retrieval, store).assemble(NOVEL_ID, QUERY)

        assert bundle.entities == []
        assert bundle.summaries == []
        assert bundle.novel_summary is None


class TestNovelContextStore:
    async def test_recent_summaries_before_current_chapter(self, session_maker, make_user):
        user = await make_user()
        novel = Novel(id=uuid.uuid4(), user_id=user.id, title="Test novel")
        chapters = [
            Chapter(id=uuid.uuid4(), novel_id=novel.id, number=n, title=f"Ch {n}", content="")
            for n in range(1, 5)
        ]
        summaries = [
            ChapterSummary(
                novel_id=novel.id,
                chapter_id=chapter.id,
                chapter_number=chapter.number,
                chapter_title=chapter.title,
                summary=f"Summary {chapter.number}",
            )
            for chapter in chapters
        ]
        async with session_maker() as db:
            db.add(novel)
            db.add_all(chapters)
            db.add_all(summaries)
            await db.commit()

        rows = await NovelContextStore(session_maker).recent_summaries(
            novel.id, 10, before_chapter_id=chapters[2].id
        )

        assert [row.chapter_number for row in rows] == [2, 1]

    async def test_unsummarised_current_chapter_still_bounds(self, session_maker, make_user):
        user = await make_user()
        novel = Novel(id=uuid.uuid4(), user_id=user.id, title="Test novel")
        chapters = [
            Chapter(id=uuid.uuid4(), novel_id=novel.id, number=n, title=f"Ch {n}", content="")
            for n in range(1, 6)
        ]
        current = chapters[2]
        async with session_maker() as db:
            db.add(novel)
            db.add_all(chapters)
            db.add_all(
                ChapterSummary(
                    novel_id=novel.id,
                    chapter_id=chapter.id,
                    chapter_number=chapter.number,
                    chapter_title=chapter.title,
                    summary=f"Summary {chapter.number}",
                )
                for chapter in chapters
                if chapter is not current
            )
            await db.commit()

        rows = await NovelContextStore(session_maker).recent_summaries(
            novel.id, 10, before_chapter_id=current.id
        )

        assert [row.chapter_number for row in rows] == [2, 1]
