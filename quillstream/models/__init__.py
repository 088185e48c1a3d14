# Database Models
from quillstream.models.base import Base, TimestampMixin
from quillstream.models.credit_transaction import (
    CreditTransaction,
    CreditTransactionType,
)
from quillstream.models.generation_log import GenerationLog
from quillstream.models.novel import (
    Card,
    CardCategory,
    Chapter,
    ChapterSummary,
    Novel,
)
from quillstream.models.user import User

__all__ = [
    "Base",
    "Card",
    "CardCategory",
    "Chapter",
    "ChapterSummary",
    "CreditTransaction",
    "CreditTransactionType",
    "GenerationLog",
    "Novel",
    "TimestampMixin",
    "User",
]
