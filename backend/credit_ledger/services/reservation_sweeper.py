"""Reservation sweeper background worker.

asyncio background task started from the FastAPI lifespan. Rolls back
reservations that stayed ``pending`` longer than the configured TTL (for
example when a client crashed between reserve and finalize), returning the
held credit to the user's balance.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from credit_ledger.core.config import settings
from credit_ledger.repositories.usage_repository import UsageRepository
from credit_ledger.services.ledger_service import LedgerService

logger = logging.getLogger(__name__)

# Maximum reservations expired per pass; the rest wait for the next pass.
_BATCH_SIZE = 100


@dataclass
class SweepResult:
    """Statistics from one sweep pass."""

    started_at: datetime
    finished_at: datetime | None = None
    examined: int = 0
    expired: int = 0
    errors: int = 0
    expired_request_ids: list[str] = field(default_factory=list)


class ReservationSweeper:
    """Background worker that expires stale pending reservations.

    Lifecycle:
    - start() creates an asyncio task that runs the sweep loop.
    - stop() cancels the task and waits for graceful shutdown.
    - run_once() executes a single pass (for testing).

    Args:
        session_factory: Async session factory for DB access.
        interval_seconds: Seconds between sweep passes.
        ttl_seconds: Age after which a pending reservation expires.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        interval_seconds: int | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._interval_seconds = (
            interval_seconds or settings.reservation_sweep_interval_seconds
        )
        self._ttl = timedelta(seconds=ttl_seconds or settings.reservation_ttl_seconds)
        self._task: asyncio.Task[None] | None = None
        self._last_run_at: datetime | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        """Whether the background task is currently active."""
        return self._running and self._task is not None and not self._task.done()

    @property
    def last_run_at(self) -> datetime | None:
        """Timestamp of the most recent completed pass."""
        return self._last_run_at

    def start(self) -> None:
        """Start the background sweep loop.

        Creates an asyncio task. No-op if already running.
        Must be called from an async context (running event loop).
        """
        if self.is_running:
            logger.warning("Reservation sweeper already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Reservation sweeper started (interval=%ds, ttl=%ds)",
            self._interval_seconds,
            int(self._ttl.total_seconds()),
        )

    async def stop(self) -> None:
        """Stop the background sweep loop.

        Cancels the task and waits for it to finish.
        """
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None
        logger.info("Reservation sweeper stopped")

    async def run_once(self, now: datetime | None = None) -> SweepResult:
        """Expire every pending reservation older than the TTL.

        Each reservation is rolled back in its own transaction, so one
        failure does not block the others.

        Args:
            now: Reference time (defaults to the current time).

        Returns:
            SweepResult with statistics from the pass.
        """
        result = SweepResult(started_at=now or datetime.now(UTC))
        cutoff = result.started_at - self._ttl

        async with self._session_factory() as db:
            stale = await UsageRepository.list_expired_pending(
                db, older_than=cutoff, limit=_BATCH_SIZE
            )
            request_ids = [log.request_id for log in stale]
        result.examined = len(request_ids)

        for request_id in request_ids:
            try:
                async with self._session_factory() as db:
                    expired = await LedgerService(db).expire_reservation(request_id)
                    await db.commit()
            except Exception:  # noqa: BLE001
                result.errors += 1
                logger.exception("Failed to expire reservation %s", request_id)
                continue
            if expired:
                result.expired += 1
                result.expired_request_ids.append(str(request_id))

        result.finished_at = datetime.now(UTC)
        self._last_run_at = result.finished_at
        return result

    async def _run_loop(self) -> None:
        """Background loop: run_once → sleep → repeat."""
        try:
            while self._running:
                try:
                    result = await self.run_once()
                    if result.examined:
                        logger.info(
                            "Sweep pass: %d stale, %d expired, %d errors",
                            result.examined,
                            result.expired,
                            result.errors,
                        )
                except Exception:  # noqa: BLE001
                    logger.exception("Error in reservation sweep pass")
                await asyncio.sleep(self._interval_seconds)
        except asyncio.CancelledError:
            logger.debug("Sweep loop cancelled")
            raise
