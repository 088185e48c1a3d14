"""Record of a completed chapter generation and its token usage."""

import uuid
from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from quillstream.models.base import Base, TimestampMixin


class GenerationLog(Base, TimestampMixin):
    """One row per generation whose stream reported usage.

    Token columns are copied from the same usage object that was sent to
    the client, so billing analytics and the wire never disagree.
    """

    __tablename__ = "generation_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    novel_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("novels.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    tier: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    thinking_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    credits_consumed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Request echo
    story_background: Mapped[str | None] = mapped_column(Text, nullable=True)
    chapter_plot: Mapped[str] = mapped_column(Text, nullable=False)
    writing_style: Mapped[str | None] = mapped_column(Text, nullable=True)
    character_relations: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Characters and terms the user picked by hand
    linked_card_names: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    matched_card_names: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=list
    )
    context_meta: Mapped[dict[str, Any]] = mapped_column(
        JSON, nullable=False, default=dict
    )

    # Usage
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    thinking_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cached_tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)
    total_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    thinking: Mapped[str | None] = mapped_column(Text, nullable=True)

    generated_content: Mapped[str] = mapped_column(Text, nullable=False, default="")
