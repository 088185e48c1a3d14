"""Credit ledger gate.

Balances live on ``users.credit_balance`` and change only through this
module. A debit is a single conditional UPDATE (``balance >= amount`` in
the WHERE clause), so concurrent debits can never take a balance below
zero; the database's row lock serialises them. Each mutation writes a
``CreditTransaction`` row in the same transaction.

The pre-check (``check_sufficient``) is advisory and lets the API reject
early with a helpful message; ``consume`` is the authoritative gate.
"""

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TypeVar

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from quillstream.database import get_session_maker
from quillstream.logging_config import get_logger
from quillstream.models.credit_transaction import (
    CreditTransaction,
    CreditTransactionType,
)
from quillstream.models.user import User

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class CreditCheck:
    sufficient: bool
    balance: int
    required: int


@dataclass(frozen=True)
class CreditLedgerEntry:
    id: uuid.UUID
    user_id: uuid.UUID
    amount: int
    balance_after: int
    category: str
    description: str | None
    created_at: datetime


@dataclass(frozen=True)
class ConsumeResult:
    success: bool
    balance: int
    entry: CreditLedgerEntry | None = None
    error: str | None = None


def insufficient_credits_exception(required: int, balance: int) -> HTTPException:
    """402 carrying both the required amount and the current balance."""
    return HTTPException(
        status_code=status.HTTP_402_PAYMENT_REQUIRED,
        detail={
            "message": f"Insufficient credits: need {required}, balance {balance}",
            "required": required,
            "balance": balance,
        },
    )


class CreditLedger:
    """Reads and mutates user credit balances."""

    def __init__(
        self, session_maker: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        self._session_maker = session_maker or get_session_maker()

    @staticmethod
    async def _read_balance(db: AsyncSession, user_id: uuid.UUID) -> int | None:
        result = await db.execute(
            select(User.credit_balance).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_balance(self, user_id: uuid.UUID) -> int:
        """Current balance; unknown users have zero."""
        async with self._session_maker() as db:
            return await self._read_balance(db, user_id) or 0

    async def check_sufficient(self, user_id: uuid.UUID, amount: int) -> CreditCheck:
        balance = await self.get_balance(user_id)
        return CreditCheck(sufficient=balance >= amount, balance=balance, required=amount)

    async def consume(
        self,
        user_id: uuid.UUID,
        amount: int,
        category: str,
        description: str | None = None,
    ) -> ConsumeResult:
        """Atomically debit ``amount`` credits.

        Args:
            user_id: Account to debit.
            amount: Credits to take; must be non-negative.
            category: Ledger category, e.g. "ai_chapter".
            description: Free-text note stored with the ledger entry.

        Returns:
            ConsumeResult; ``success`` is False (and nothing changed) when the
            balance was too low at the moment of the debit.

        Raises:
            ValueError: If ``amount`` is negative.
        """
        if amount < 0:
            raise ValueError("Debit amount must be non-negative")

        async with self._session_maker() as db:
            result = await db.execute(
                update(User)
                .where(User.id == user_id, User.credit_balance >= amount)
                .values(credit_balance=User.credit_balance - amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                balance = await self._read_balance(db, user_id)
                error = (
                    "User not found"
                    if balance is None
                    else f"Insufficient credits: need {amount}, balance {balance}"
                )
                logger.warning(
                    "Credit debit rejected",
                    user_id=str(user_id),
                    amount=amount,
                    balance=balance,
                    category=category,
                )
                return ConsumeResult(success=False, balance=balance or 0, error=error)

            balance_after = await self._read_balance(db, user_id) or 0
            entry = await self._record(
                db,
                user_id,
                CreditTransactionType.CONSUME,
                -amount,
                balance_after,
                category,
                description,
            )
            await db.commit()

        logger.info(
            "Credits consumed",
            user_id=str(user_id),
            amount=amount,
            balance_after=balance_after,
            category=category,
        )
        return ConsumeResult(success=True, balance=balance_after, entry=entry)

    async def refund(
        self,
        user_id: uuid.UUID,
        amount: int,
        category: str,
        description: str | None = None,
    ) -> ConsumeResult:
        """Return credits after a failed single-shot operation.

        Raises:
            ValueError: If ``amount`` is negative.
        """
        if amount < 0:
            raise ValueError("Refund amount must be non-negative")

        async with self._session_maker() as db:
            result = await db.execute(
                update(User)
                .where(User.id == user_id)
                .values(credit_balance=User.credit_balance + amount)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                await db.rollback()
                return ConsumeResult(success=False, balance=0, error="User not found")

            balance_after = await self._read_balance(db, user_id) or 0
            entry = await self._record(
                db,
                user_id,
                CreditTransactionType.REFUND,
                amount,
                balance_after,
                category,
                description,
            )
            await db.commit()

        logger.info(
            "Credits refunded",
            user_id=str(user_id),
            amount=amount,
            balance_after=balance_after,
            category=category,
        )
        return ConsumeResult(success=True, balance=balance_after, entry=entry)

    @staticmethod
    async def _record(
        db: AsyncSession,
        user_id: uuid.UUID,
        type_: CreditTransactionType,
        amount: int,
        balance_after: int,
        category: str,
        description: str | None,
    ) -> CreditLedgerEntry:
        transaction = CreditTransaction(
            id=uuid.uuid4(),
            user_id=user_id,
            type=type_,
            amount=amount,
            balance_after=balance_after,
            category=category,
            description=description,
        )
        db.add(transaction)
        await db.flush()
        return CreditLedgerEntry(
            id=transaction.id,
            user_id=user_id,
            amount=amount,
            balance_after=balance_after,
            category=category,
            description=description,
            created_at=datetime.now(timezone.utc),
        )


async def with_credits(
    ledger: CreditLedger,
    *,
    user_id: uuid.UUID,
    amount: int,
    category: str,
    description: str,
    action: Callable[[], Awaitable[T]],
) -> tuple[T, ConsumeResult]:
    """Charge for a single-shot operation, refunding if it fails.

    Streaming generation does not use this: once a stream starts, credits
    are never refunded.

    Returns:
        The action's result and the successful debit.

    Raises:
        HTTPException: 402 when the balance is too low; 502 (or the action's
            own HTTPException) when the action fails after the debit.
    """
    check = await ledger.check_sufficient(user_id, amount)
    if not check.sufficient:
        raise insufficient_credits_exception(amount, check.balance)

    debit = await ledger.consume(user_id, amount, category, description)
    if not debit.success:
        raise HTTPException(
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            detail={
                "message": debit.error or "Credit debit failed",
                "required": amount,
                "balance": debit.balance,
            },
        )

    try:
        result = await action()
    except Exception as e:
        logger.error(
            "Credited operation failed; refunding",
            user_id=str(user_id),
            amount=amount,
            category=category,
            error=str(e),
        )
        try:
            await ledger.refund(user_id, amount, category, f"Refund: {description}")
        except Exception:
            logger.exception(
                "Refund failed", user_id=str(user_id), amount=amount, category=category
            )
        if isinstance(e, HTTPException):
            raise
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="AI generation failed; credits have been refunded",
        ) from e

    return result, debit


def get_credit_ledger() -> CreditLedger:
    return CreditLedger()
