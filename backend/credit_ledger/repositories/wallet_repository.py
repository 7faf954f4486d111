"""Repository for credit wallet reads and atomic balance moves.

Every mutation is a single conditional UPDATE whose WHERE clause encodes
the non-negativity invariant; callers check the returned bool instead of
reading then writing.
"""

import uuid
from typing import Any, cast

from sqlalchemy import select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.models.base import utcnow
from credit_ledger.models.wallet import CreditWallet


class WalletRepository:
    """Stateless repository for CreditWallet operations.

    All methods are static: no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_user_id(
        db: AsyncSession, user_id: uuid.UUID
    ) -> CreditWallet | None:
        """Read the user's wallet, refreshing any copy already in the session.

        Args:
            db: Async database session.
            user_id: Wallet owner.

        Returns:
            CreditWallet if found, None otherwise.
        """
        stmt = (
            select(CreditWallet)
            .where(CreditWallet.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def lock_for_update(
        db: AsyncSession, user_id: uuid.UUID
    ) -> CreditWallet | None:
        """Read the user's wallet with a row lock held until commit.

        SELECT ... FOR UPDATE serializes concurrent mutations of one wallet
        on PostgreSQL. Dialects without row locks ignore the clause.

        Args:
            db: Async database session.
            user_id: Wallet owner.

        Returns:
            Locked CreditWallet if found, None otherwise.
        """
        stmt = (
            select(CreditWallet)
            .where(CreditWallet.user_id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def _conditional_update(
        db: AsyncSession,
        user_id: uuid.UUID,
        conditions: list[Any],
        values: dict[str, Any],
    ) -> bool:
        stmt = (
            update(CreditWallet)
            .where(CreditWallet.user_id == user_id, *conditions)
            .values(**values, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        result = cast(CursorResult[Any], await db.execute(stmt))
        rows_updated: int = result.rowcount
        return rows_updated > 0

    @staticmethod
    async def atomic_reserve(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        amount: int = 1,
    ) -> bool:
        """Move credits from balance to reserved.

        Uses WHERE credits_balance >= amount to prevent overdraft.

        Args:
            db: Async database session.
            user_id: Wallet owner.
            amount: Credits to hold (positive).

        Returns:
            True if the hold was placed, False if insufficient balance.

        Raises:
            ValueError: If amount is not positive.
        """
        if amount <= 0:
            raise ValueError("atomic_reserve amount must be positive")
        return await WalletRepository._conditional_update(
            db,
            user_id,
            [CreditWallet.credits_balance >= amount],
            {
                "credits_balance": CreditWallet.credits_balance - amount,
                "credits_reserved": CreditWallet.credits_reserved + amount,
            },
        )

    @staticmethod
    async def atomic_consume_reserved(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        amount: int = 1,
    ) -> bool:
        """Spend held credits (reserved -= amount).

        Returns:
            True if updated, False if fewer than ``amount`` credits are held.

        Raises:
            ValueError: If amount is not positive.
        """
        if amount <= 0:
            raise ValueError("atomic_consume_reserved amount must be positive")
        return await WalletRepository._conditional_update(
            db,
            user_id,
            [CreditWallet.credits_reserved >= amount],
            {"credits_reserved": CreditWallet.credits_reserved - amount},
        )

    @staticmethod
    async def atomic_release_reserved(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        amount: int = 1,
    ) -> bool:
        """Return held credits to the spendable balance.

        Returns:
            True if updated, False if fewer than ``amount`` credits are held.

        Raises:
            ValueError: If amount is not positive.
        """
        if amount <= 0:
            raise ValueError("atomic_release_reserved amount must be positive")
        return await WalletRepository._conditional_update(
            db,
            user_id,
            [CreditWallet.credits_reserved >= amount],
            {
                "credits_reserved": CreditWallet.credits_reserved - amount,
                "credits_balance": CreditWallet.credits_balance + amount,
            },
        )

    @staticmethod
    async def atomic_grant(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        amount: int,
    ) -> bool:
        """Add purchased credits to balance and lifetime total.

        Args:
            db: Async database session.
            user_id: Wallet owner.
            amount: Credits granted (positive).

        Returns:
            True if the wallet exists and was updated.

        Raises:
            ValueError: If amount is not positive.
        """
        if amount <= 0:
            raise ValueError("atomic_grant amount must be positive")
        return await WalletRepository._conditional_update(
            db,
            user_id,
            [],
            {
                "credits_balance": CreditWallet.credits_balance + amount,
                "lifetime_credits": CreditWallet.lifetime_credits + amount,
            },
        )
