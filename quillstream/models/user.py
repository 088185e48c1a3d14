"""User account model with its credit balance."""

import uuid

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from quillstream.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """User account.

    Attributes:
        id: Unique user identifier (UUID)
        email: Login email (unique)
        display_name: Optional name shown in the UI
        is_active: Whether the account may authenticate
        credit_balance: Spendable credits; only the ledger mutates it
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("credit_balance >= 0", name="ck_users_credit_balance_nonneg"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    display_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    credit_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
