"""Request and response schemas for the generation endpoints.

Request bodies use camelCase on the wire (``chapterPlot``, ``wordCount``);
snake_case names are accepted too.
"""

import uuid
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from quillstream.schemas.ai import AspectRatio, ImageSize
from quillstream.schemas.context import LinkedChapter


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChapterCharacter(CamelModel):
    """A character the user selected manually for this chapter."""

    name: str = Field(min_length=1, max_length=100)
    gender: str | None = Field(default=None, max_length=50)
    age: str | None = Field(default=None, max_length=50)
    personality: str | None = Field(default=None, max_length=1000)
    background: str | None = Field(default=None, max_length=2000)
    abilities: str | None = Field(default=None, max_length=1000)


class ChapterTerm(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: str | None = Field(default=None, max_length=2000)


class GenerateChapterRequest(CamelModel):
    """Body of ``POST /api/novels/{novel_id}/chapters/generate``."""

    ai_model: str = Field(default="balanced", max_length=50)
    story_background: str | None = Field(default=None, max_length=2000)
    chapter_plot: str = Field(min_length=1, max_length=3000)
    writing_style: str | None = Field(default=None, max_length=500)
    word_count: int = Field(default=2000, ge=500, le=5000)
    characters: list[ChapterCharacter] = Field(default_factory=list, max_length=30)
    terms: list[ChapterTerm] = Field(default_factory=list, max_length=50)
    character_relations: str | None = Field(default=None, max_length=2000)
    linked_chapters: list[LinkedChapter] = Field(default_factory=list, max_length=5)
    excluded_card_ids: list[uuid.UUID] = Field(default_factory=list)
    excluded_summary_ids: list[uuid.UUID] = Field(default_factory=list)
    # Text already written for this chapter, continued rather than rewritten
    previous_content: str | None = Field(default=None, max_length=10000)
    chapter_id: uuid.UUID | None = None


class GenerateCardRequest(CamelModel):
    """Body of ``POST /api/novels/{novel_id}/cards/generate``."""

    category: Literal["character", "term"]
    keywords: str = Field(min_length=1, max_length=500)
    style: str | None = Field(default=None, max_length=100)
    model: str | None = Field(default=None, max_length=50)


class CardNameOption(BaseModel):
    name: str
    meaning: str | None = None


class GeneratedCard(BaseModel):
    """Card draft returned by the model in JSON mode."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    names: list[CardNameOption] = Field(default_factory=list)
    gender: str | None = None
    age: str | None = None
    personality: str | None = None
    background: str | None = None
    abilities: str | None = None
    description: str | None = None
    suggested_tags: list[str] = Field(default_factory=list)


class GenerateCardResponse(CamelModel):
    card: GeneratedCard
    credits_consumed: int
    balance_after: int


class GenerateCoverRequest(CamelModel):
    """Body of ``POST /api/covers/generate``."""

    prompt: str = Field(min_length=1, max_length=1000)
    style: str | None = Field(default=None, max_length=200)
    aspect_ratio: AspectRatio = "3:4"
    size: ImageSize = "1K"
    model: str | None = Field(default=None, max_length=100)


class GenerateCoverResponse(CamelModel):
    image_base64: str
    mime_type: str
    width: int
    height: int
    credits_consumed: int
    balance_after: int


OutlineNodeType = Literal["volume", "chapter_outline", "plot_point"]


class OutlineParent(CamelModel):
    """The node a generated outline node will sit under."""

    type: OutlineNodeType
    title: str = Field(min_length=1, max_length=100)
    content: str | None = Field(default=None, max_length=5000)


class GenerateOutlineRequest(CamelModel):
    """Body of ``POST /api/novels/{novel_id}/outline/generate``."""

    node_type: OutlineNodeType
    keywords: str = Field(min_length=1, max_length=500)
    style: str | None = Field(default=None, max_length=200)
    model: str | None = Field(default=None, max_length=50)
    parent: OutlineParent | None = None


class GeneratedOutline(BaseModel):
    """Outline node draft returned by the model in JSON mode."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    titles: list[CardNameOption] = Field(default_factory=list)
    content: str = ""
    child_suggestions: list[str] = Field(default_factory=list)


class GenerateOutlineResponse(CamelModel):
    node_type: OutlineNodeType
    outline: GeneratedOutline
    credits_consumed: int
    balance_after: int


class RewritePassageRequest(CamelModel):
    """Body of ``POST /api/rewrite``."""

    text: str = Field(min_length=10, max_length=50000)
    model: str | None = Field(default=None, max_length=50)


class RewritePassageResponse(CamelModel):
    text: str
    original_length: int
    rewritten_length: int
    block_count: int
    rewritten_blocks: int
    credits_consumed: int
    balance_after: int


class TextModelInfo(CamelModel):
    id: str
    name: str
    credits: int
    thinking: bool
    description: str


class CardModelInfo(CamelModel):
    id: str
    name: str
    credits: int
    description: str


class AvailableModelsResponse(CamelModel):
    text_models: list[TextModelInfo]
    card_models: list[CardModelInfo]
    default_text_model: str
    default_card_model: str


class TokenUsageSummary(CamelModel):
    generation_count: int
    input_tokens: int
    output_tokens: int
    thinking_tokens: int
    total_tokens: int
    credits_consumed: int


class ErrorResponse(BaseModel):
    detail: str
