"""Credit ledger history.

Every balance mutation writes one row here in the same transaction as the
balance update, so the history always reconciles with ``users.credit_balance``.
"""

import enum
import uuid

from sqlalchemy import Enum, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from quillstream.models.base import Base, TimestampMixin


class CreditTransactionType(str, enum.Enum):
    """Direction and reason of a balance change."""

    CONSUME = "consume"
    REFUND = "refund"
    RECHARGE = "recharge"
    GIFT = "gift"


class CreditTransaction(Base, TimestampMixin):
    """One ledger entry.

    ``amount`` is signed: negative for debits, positive for credits.
    """

    __tablename__ = "credit_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type: Mapped[CreditTransactionType] = mapped_column(
        Enum(
            CreditTransactionType,
            name="credittransactiontype",
            values_callable=lambda e: [member.value for member in e],
        ),
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    # e.g. "ai_chapter", "ai_card", "ai_cover"
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)
