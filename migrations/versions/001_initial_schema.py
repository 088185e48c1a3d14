"""Initial schema: users, novels, chapters, summaries, cards, credits, generation logs.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    card_category = postgresql.ENUM("character", "term", name="cardcategory")
    card_category.create(op.get_bind())
    transaction_type = postgresql.ENUM(
        "consume", "refund", "recharge", "gift", name="credittransactiontype"
    )
    transaction_type.create(op.get_bind())

    op.create_table(
        "users",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=100), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("credit_balance", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("credit_balance >= 0", name="ck_users_credit_balance_nonneg"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "novels",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("summary", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(op.f("ix_novels_user_id"), "novels", ["user_id"])

    op.create_table(
        "chapters",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("novel_id", sa.UUID(), nullable=False),
        sa.Column("number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["novel_id"], ["novels.id"], ondelete="CASCADE"),
    )
    op.create_index(op.f("ix_chapters_novel_id"), "chapters", ["novel_id"])

    op.create_table(
        "chapter_summaries",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("novel_id", sa.UUID(), nullable=False),
        sa.Column("chapter_id", sa.UUID(), nullable=False),
        sa.Column("chapter_number", sa.Integer(), nullable=False),
        sa.Column("chapter_title", sa.String(length=200), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("chapter_id"),
        sa.ForeignKeyConstraint(["novel_id"], ["novels.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["chapter_id"], ["chapters.id"], ondelete="CASCADE"),
    )
    op.create_index(
        op.f("ix_chapter_summaries_novel_id"), "chapter_summaries", ["novel_id"]
    )

    op.create_table(
        "cards",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("novel_id", sa.UUID(), nullable=False),
        sa.Column(
            "category",
            postgresql.ENUM("character", "term", name="cardcategory", create_type=False),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("triggers", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("attributes", sa.JSON(), nullable=False, server_default="{}"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["novel_id"], ["novels.id"], ondelete="CASCADE"),
    )
    op.create_index(op.f("ix_cards_novel_id"), "cards", ["novel_id"])

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column(
            "type",
            postgresql.ENUM(
                "consume",
                "refund",
                "recharge",
                "gift",
                name="credittransactiontype",
                create_type=False,
            ),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        op.f("ix_credit_transactions_user_id"), "credit_transactions", ["user_id"]
    )

    op.create_table(
        "generation_logs",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("novel_id", sa.UUID(), nullable=True),
        sa.Column("tier", sa.String(length=50), nullable=False),
        sa.Column("model", sa.String(length=100), nullable=False),
        sa.Column("provider", sa.String(length=50), nullable=False),
        sa.Column("thinking_enabled", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("credits_consumed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("story_background", sa.Text(), nullable=True),
        sa.Column("chapter_plot", sa.Text(), nullable=False),
        sa.Column("writing_style", sa.Text(), nullable=True),
        sa.Column("character_relations", sa.Text(), nullable=True),
        sa.Column("linked_card_names", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("matched_card_names", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("context_meta", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("input_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("output_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("thinking_tokens", sa.Integer(), nullable=True),
        sa.Column("cached_tokens", sa.Integer(), nullable=True),
        sa.Column("total_tokens", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("thinking", sa.Text(), nullable=True),
        sa.Column("generated_content", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["novel_id"], ["novels.id"], ondelete="SET NULL"),
    )
    op.create_index(op.f("ix_generation_logs_user_id"), "generation_logs", ["user_id"])
    op.create_index(op.f("ix_generation_logs_novel_id"), "generation_logs", ["novel_id"])


def downgrade() -> None:
    op.drop_index(op.f("ix_generation_logs_novel_id"), table_name="generation_logs")
    op.drop_index(op.f("ix_generation_logs_user_id"), table_name="generation_logs")
    op.drop_table("generation_logs")
    op.drop_index(op.f("ix_credit_transactions_user_id"), table_name="credit_transactions")
    op.drop_table("credit_transactions")
    op.drop_index(op.f("ix_cards_novel_id"), table_name="cards")
    op.drop_table("cards")
    op.drop_index(op.f("ix_chapter_summaries_novel_id"), table_name="chapter_summaries")
    op.drop_table("chapter_summaries")
    op.drop_index(op.f("ix_chapters_novel_id"), table_name="chapters")
    op.drop_table("chapters")
    op.drop_index(op.f("ix_novels_user_id"), table_name="novels")
    op.drop_table("novels")
    op.drop_index(op.f("ix_users_email"), table_name="users")
    op.drop_table("users")

    postgresql.ENUM(name="credittransactiontype").drop(op.get_bind())
    postgresql.ENUM(name="cardcategory").drop(op.get_bind())
