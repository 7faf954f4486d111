"""Repository for credit transaction ledger operations.

Provides append and read access for the credit_transactions table. The
ledger is append-only: there is no update or delete method.
"""

import uuid
from collections.abc import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.models.usage import CreditTransaction


class CreditRepository:
    """Stateless repository for CreditTransaction operations.

    All methods are static: no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        amount: int,
        transaction_type: str,
        reference_id: str | None = None,
        description: str | None = None,
    ) -> CreditTransaction:
        """Append a ledger entry.

        Args:
            db: Async database session.
            user_id: Account owner.
            amount: Signed amount (+grant, -usage, 0 for audit markers).
            transaction_type: One of purchase, usage, refund, subscription_renewal.
            reference_id: Store transaction id or reservation request id.
            description: Human-readable description.

        Returns:
            Created CreditTransaction with database-generated fields.

        Raises:
            sqlalchemy.exc.IntegrityError: If (transaction_type, reference_id)
                already exists.
        """
        txn = CreditTransaction(
            user_id=user_id,
            amount=amount,
            transaction_type=transaction_type,
            reference_id=reference_id,
            description=description,
        )
        db.add(txn)
        await db.flush()
        await db.refresh(txn)
        return txn

    @staticmethod
    async def get_by_reference(
        db: AsyncSession,
        *,
        transaction_type: str,
        reference_id: str,
    ) -> CreditTransaction | None:
        """Find the entry recorded for an external reference, if any."""
        stmt = select(CreditTransaction).where(
            CreditTransaction.transaction_type == transaction_type,
            CreditTransaction.reference_id == reference_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def list_by_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        limit: int = 10,
        transaction_types: Sequence[str] | None = None,
    ) -> list[CreditTransaction]:
        """List a user's most recent transactions, newest first.

        Args:
            db: Async database session.
            user_id: User to query transactions for.
            limit: Maximum records to return.
            transaction_types: Optional filter on entry type.

        Returns:
            Transactions ordered by created_at descending.
        """
        conditions = [CreditTransaction.user_id == user_id]
        if transaction_types is not None:
            conditions.append(
                CreditTransaction.transaction_type.in_(list(transaction_types))
            )

        stmt = (
            select(CreditTransaction)
            .where(*conditions)
            .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count_by_types(
        db: AsyncSession,
        user_id: uuid.UUID,
        transaction_types: Sequence[str],
    ) -> int:
        """Count a user's transactions of the given types."""
        stmt = (
            select(func.count())
            .select_from(CreditTransaction)
            .where(
                CreditTransaction.user_id == user_id,
                CreditTransaction.transaction_type.in_(list(transaction_types)),
            )
        )
        result = await db.execute(stmt)
        return result.scalar_one()
