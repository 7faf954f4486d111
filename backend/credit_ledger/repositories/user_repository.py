"""Repository for User lookups and lazy device registration.

Provides database access for the users table. A user is always created
together with its (empty) credit wallet.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credit_ledger.models.user import User
from credit_ledger.models.wallet import CreditWallet

logger = logging.getLogger(__name__)


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static: no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch a user by primary key.

        Args:
            db: Async database session.
            user_id: UUID primary key.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def get_by_device_id(db: AsyncSession, device_id: str) -> User | None:
        """Fetch a user by device identifier.

        Args:
            db: Async database session.
            device_id: Installation identifier sent in the x-device-id header.

        Returns:
            User if found, None otherwise.
        """
        stmt = select(User).where(User.device_id == device_id)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_payment_customer_id(
        db: AsyncSession, customer_id: str
    ) -> User | None:
        """Fetch a user by payment platform subscriber id."""
        stmt = select(User).where(User.payment_customer_id == customer_id).limit(1)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(db: AsyncSession, *, device_id: str) -> User:
        """Create a new free-plan user with a zero-balance wallet.

        Args:
            db: Async database session.
            device_id: Installation identifier.

        Returns:
            Created User.

        Raises:
            sqlalchemy.exc.IntegrityError: If device_id already exists.
        """
        user = User(device_id=device_id)
        db.add(user)
        await db.flush()
        db.add(CreditWallet(user_id=user.id))
        await db.flush()
        await db.refresh(user)
        return user

    @staticmethod
    async def get_or_create(db: AsyncSession, device_id: str) -> tuple[User, bool]:
        """Resolve the user for a device, registering it on first contact.

        Uses savepoint + IntegrityError recovery so two first requests
        from the same device cannot create two users.

        Args:
            db: Async database session.
            device_id: Installation identifier.

        Returns:
            Tuple of (user, created).
        """
        user = await UserRepository.get_by_device_id(db, device_id)
        if user is not None:
            return user, False

        try:
            async with db.begin_nested():
                user = await UserRepository.create(db, device_id=device_id)
            return user, True
        except IntegrityError:
            logger.debug("Concurrent registration for device %s", device_id)
            existing = await UserRepository.get_by_device_id(db, device_id)
            if existing is None:
                raise
            return existing, False

    @staticmethod
    async def set_plan_type(db: AsyncSession, user: User, plan_type: str) -> User:
        """Update a user's plan type."""
        user.plan_type = plan_type
        await db.flush()
        return user

    @staticmethod
    async def set_payment_customer_id(
        db: AsyncSession, user: User, customer_id: str
    ) -> User:
        """Link a user to a payment platform subscriber id."""
        user.payment_customer_id = customer_id
        await db.flush()
        return user
