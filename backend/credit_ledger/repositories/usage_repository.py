"""Repository for reservation usage log operations.

Provides database access for the usage_logs table: creating pending
reservations, locating them for settlement, and the daily-quota count.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.models.base import utcnow
from credit_ledger.models.usage import UsageLog, UsageStatus


class UsageRepository:
    """Stateless repository for UsageLog table operations.

    All methods are static: no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def create_pending(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        request_id: uuid.UUID,
        project_type: str | None = None,
        country_code: str | None = None,
    ) -> UsageLog:
        """Insert a pending reservation row.

        Args:
            db: Async database session.
            user_id: Reservation owner.
            request_id: Reservation id returned to the caller.
            project_type: Optional estimate category.
            country_code: Optional region.

        Returns:
            Created UsageLog.
        """
        log = UsageLog(
            user_id=user_id,
            request_id=request_id,
            status=UsageStatus.PENDING.value,
            project_type=project_type,
            country_code=country_code,
        )
        db.add(log)
        await db.flush()
        return log

    @staticmethod
    async def get_by_request_id(
        db: AsyncSession, request_id: uuid.UUID
    ) -> UsageLog | None:
        """Fetch a reservation by request id (any status)."""
        stmt = select(UsageLog).where(UsageLog.request_id == request_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_pending_for_update(
        db: AsyncSession, request_id: uuid.UUID
    ) -> UsageLog | None:
        """Fetch and row-lock a reservation that is still pending.

        Args:
            db: Async database session.
            request_id: Reservation id.

        Returns:
            The pending UsageLog, or None if unknown or already settled.
        """
        stmt = (
            select(UsageLog)
            .where(
                UsageLog.request_id == request_id,
                UsageLog.status == UsageStatus.PENDING.value,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def mark_completed(
        db: AsyncSession,
        log: UsageLog,
        *,
        latency_ms: int | None,
        response_size: int | None,
        estimated_cost_usd: Decimal | None,
    ) -> UsageLog:
        """Settle a pending reservation as consumed."""
        log.status = UsageStatus.COMPLETED.value
        log.latency_ms = latency_ms
        log.response_size = response_size
        log.estimated_cost_usd = estimated_cost_usd
        log.completed_at = utcnow()
        await db.flush()
        return log

    @staticmethod
    async def mark_failed(
        db: AsyncSession, log: UsageLog, *, error_message: str | None
    ) -> UsageLog:
        """Settle a pending reservation as refunded."""
        log.status = UsageStatus.FAILED.value
        log.error_message = error_message
        log.completed_at = utcnow()
        await db.flush()
        return log

    @staticmethod
    async def count_completed_since(
        db: AsyncSession, user_id: uuid.UUID, since: datetime
    ) -> int:
        """Count a user's completed reservations created at or after ``since``.

        Args:
            db: Async database session.
            user_id: Reservation owner.
            since: Inclusive lower bound (timezone-aware UTC).

        Returns:
            Number of completed reservations.
        """
        stmt = (
            select(func.count())
            .select_from(UsageLog)
            .where(
                UsageLog.user_id == user_id,
                UsageLog.status == UsageStatus.COMPLETED.value,
                UsageLog.created_at >= since,
            )
        )
        result = await db.execute(stmt)
        return result.scalar_one()

    @staticmethod
    async def count_completed(db: AsyncSession, user_id: uuid.UUID) -> int:
        """Count all of a user's completed reservations."""
        stmt = (
            select(func.count())
            .select_from(UsageLog)
            .where(
                UsageLog.user_id == user_id,
                UsageLog.status == UsageStatus.COMPLETED.value,
            )
        )
        result = await db.execute(stmt)
        return result.scalar_one()

    @staticmethod
    async def list_expired_pending(
        db: AsyncSession, *, older_than: datetime, limit: int = 100
    ) -> list[UsageLog]:
        """List pending reservations created before ``older_than``, oldest first.

        Args:
            db: Async database session.
            older_than: Exclusive upper bound on created_at.
            limit: Maximum rows per sweep.

        Returns:
            Expired pending UsageLogs.
        """
        stmt = (
            select(UsageLog)
            .where(
                UsageLog.status == UsageStatus.PENDING.value,
                UsageLog.created_at < older_than,
            )
            .order_by(UsageLog.created_at)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())
