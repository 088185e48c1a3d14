"""Context assembly schemas.

Retrieval hits returned by the embedding index, and the ``ContextBundle``
that the context assembler hands to prompt building.
"""

import uuid
from typing import Any

from pydantic import BaseModel, Field


class CardHit(BaseModel):
    """A card matched by semantic search."""

    id: uuid.UUID
    name: str
    category: str
    description: str | None = None
    score: float


class SummaryHit(BaseModel):
    """A chapter summary matched by semantic search."""

    id: uuid.UUID
    chapter_id: uuid.UUID
    chapter_title: str
    summary: str
    score: float


class MatchedEntity(BaseModel):
    """A named entity selected for the prompt, with its descriptive attributes."""

    id: uuid.UUID
    name: str
    category: str
    description: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    score: float | None = None  # None when matched by trigger word


class PriorEventSummary(BaseModel):
    id: uuid.UUID
    chapter_id: uuid.UUID
    chapter_title: str
    summary: str


class LinkedChapter(BaseModel):
    """A chapter the user explicitly attached as reference material."""

    title: str = Field(max_length=200)
    content: str


class ContextBundle(BaseModel):
    """Everything retrieved for one generation request."""

    novel_summary: str | None = None
    entities: list[MatchedEntity] = Field(default_factory=list)
    summaries: list[PriorEventSummary] = Field(default_factory=list)
    linked_chapters: list[LinkedChapter] = Field(default_factory=list)
    # How the context was found, for logging and the generation record
    entity_source: str = "none"  # semantic | trigger | none
    summary_source: str = "none"  # semantic | recent | none

    @property
    def characters(self) -> list[MatchedEntity]:
        return [e for e in self.entities if e.category == "character"]

    @property
    def terms(self) -> list[MatchedEntity]:
        return [e for e in self.entities if e.category != "character"]
