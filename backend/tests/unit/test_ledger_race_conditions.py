"""Concurrency tests for the reservation protocol.

Each operation runs in its own session and transaction, the way two
simultaneous requests would. The store must serialize them so a balance
of one credit can never back two reservations, and a reservation can
never be settled twice.
"""

import asyncio
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from credit_ledger.core.errors import (
    APIError,
    InsufficientCreditsError,
    ReservationNotFoundError,
)
from credit_ledger.models import CreditTransaction, User
from credit_ledger.schemas.ledger import UsageMetadata
from credit_ledger.services.ledger_service import (
    LedgerService,
    ReservationResult,
)
from tests.conftest import TEST_DEVICE_ID

_METADATA = UsageMetadata(latency_ms=10, response_size=5, estimated_cost_usd=None)


async def _reserve(
    factory: async_sessionmaker[AsyncSession], device_id: str = TEST_DEVICE_ID
) -> ReservationResult:
    async with factory() as db:
        result = await LedgerService(db).reserve(device_id)
        await db.commit()
        return result


async def _finalize(
    factory: async_sessionmaker[AsyncSession], request_id: uuid.UUID
) -> None:
    async with factory() as db:
        await LedgerService(db).finalize(TEST_DEVICE_ID, request_id, _METADATA)
        await db.commit()


async def _rollback(
    factory: async_sessionmaker[AsyncSession], request_id: uuid.UUID
) -> None:
    async with factory() as db:
        await LedgerService(db).rollback(TEST_DEVICE_ID, request_id, "timeout")
        await db.commit()


class TestConcurrentReserve:
    async def test_one_credit_backs_exactly_one_reservation(
        self, session_factory, seed
    ):
        user_id = await seed.user(credits_balance=1)

        results = await asyncio.gather(
            _reserve(session_factory),
            _reserve(session_factory),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, ReservationResult)]
        failures = [r for r in results if isinstance(r, APIError)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientCreditsError)
        wallet = await seed.wallet(user_id)
        assert (wallet.credits_balance, wallet.credits_reserved) == (0, 1)

    async def test_many_reservations_never_overdraw(self, session_factory, seed):
        user_id = await seed.user(credits_balance=3)

        results = await asyncio.gather(
            *(_reserve(session_factory) for _ in range(6)),
            return_exceptions=True,
        )

        successes = [r for r in results if isinstance(r, ReservationResult)]
        assert len(successes) == 3
        assert len({r.request_id for r in successes}) == 3
        wallet = await seed.wallet(user_id)
        assert (wallet.credits_balance, wallet.credits_reserved) == (0, 3)

    async def test_first_contact_from_two_requests_creates_one_user(
        self, session_factory
    ):
        async def init() -> None:
            async with session_factory() as db:
                await LedgerService(db).init_user(TEST_DEVICE_ID)
                await db.commit()

        await asyncio.gather(init(), init())

        async with session_factory() as db:
            count = await db.scalar(
                select(func.count())
                .select_from(User)
                .where(User.device_id == TEST_DEVICE_ID)
            )
        assert count == 1


class TestConcurrentSettle:
    async def test_finalize_and_rollback_race_settles_once(
        self, session_factory, seed
    ):
        user_id = await seed.user(credits_balance=2)
        reservation = await _reserve(session_factory)

        results = await asyncio.gather(
            _finalize(session_factory, reservation.request_id),
            _rollback(session_factory, reservation.request_id),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], ReservationNotFoundError)
        wallet = await seed.wallet(user_id)
        assert wallet.credits_reserved == 0
        assert wallet.credits_balance in (1, 2)
        assert wallet.lifetime_credits == 2

    async def test_double_finalize_charges_once(self, session_factory, seed):
        user_id = await seed.user(credits_balance=1)
        reservation = await _reserve(session_factory)

        results = await asyncio.gather(
            _finalize(session_factory, reservation.request_id),
            _finalize(session_factory, reservation.request_id),
            return_exceptions=True,
        )

        assert sum(isinstance(r, ReservationNotFoundError) for r in results) == 1
        async with session_factory() as db:
            usage_rows = await db.scalar(
                select(func.count())
                .select_from(CreditTransaction)
                .where(CreditTransaction.user_id == user_id)
            )
        assert usage_rows == 1
        wallet = await seed.wallet(user_id)
        assert (wallet.credits_balance, wallet.credits_reserved) == (0, 0)
        assert wallet.lifetime_credits == 1
