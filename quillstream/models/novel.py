"""Novel content models: novels, chapters, chapter summaries, and cards.

Cards are the named entities of a novel (characters and terms). Each card
carries a list of trigger words used by the fallback matcher when semantic
retrieval returns nothing, and free-form attributes (gender, age,
personality and so on) rendered into prompts.
"""

import enum
import uuid
from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from quillstream.models.base import Base, TimestampMixin


class CardCategory(str, enum.Enum):
    """Kinds of named entity a card can describe."""

    CHARACTER = "character"
    TERM = "term"


class Novel(Base, TimestampMixin):
    """A novel owned by a user."""

    __tablename__ = "novels"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    # Whole-book synopsis injected at the top of chapter prompts
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)


class Chapter(Base, TimestampMixin):
    """A chapter of a novel."""

    __tablename__ = "chapters"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    novel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("novels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")


class ChapterSummary(Base, TimestampMixin):
    """Condensed summary of one chapter, used as prior-events context."""

    __tablename__ = "chapter_summaries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    novel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("novels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    chapter_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("chapters.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    chapter_number: Mapped[int] = mapped_column(Integer, nullable=False)
    chapter_title: Mapped[str] = mapped_column(String(200), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)


class Card(Base, TimestampMixin):
    """A named entity of a novel (character or setting term)."""

    __tablename__ = "cards"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    novel_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("novels.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category: Mapped[CardCategory] = mapped_column(
        Enum(
            CardCategory,
            name="cardcategory",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    triggers: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    attributes: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )

    def __repr__(self) -> str:
        return f"<Card(id={self.id}, name={self.name}, category={self.category.value})>"
