"""
Expiry sweeper: turns abandoned holds back into availability.

Each tick is one conditional bulk update:

    UPDATE reservations SET state = 'cancelled'
    WHERE state = 'pending' AND hold_expires_at IS NOT NULL AND hold_expires_at < :now

The `state = 'pending'` precondition is what makes the sweeper safe to run
concurrently with the reconciliation engine: if a payment confirms the row
first, the sweeper updates zero rows for it, and vice versa. Re-running on
an empty result set is a no-op.

The sweep interval bounds how long an abandoned hold keeps its slot
displayed as pending. Availability checks do not depend on the sweeper:
an expired hold is already non-blocking for new holds.
"""

import asyncio

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from enrollment.core.clock import Clock, utcnow
from enrollment.core.logging import get_logger
from enrollment.core.metrics import record_sweep
from enrollment.models.enums import ReservationState
from enrollment.models.reservation import Reservation

logger = get_logger(__name__)


class ExpirySweeper:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
        interval_seconds: float = 60,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._interval = interval_seconds

    async def sweep(self) -> list[int]:
        """Cancel every expired pending hold. Returns the cancelled ids."""
        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    update(Reservation)
                    .where(
                        Reservation.state == ReservationState.PENDING.value,
                        Reservation.hold_expires_at.is_not(None),
                        Reservation.hold_expires_at < now,
                    )
                    .values(state=ReservationState.CANCELLED.value)
                    .returning(Reservation.id)
                    .execution_options(synchronize_session=False)
                )
                expired = sorted(result.scalars().all())

        record_sweep(len(expired))
        if expired:
            logger.info("holds_expired", count=len(expired), reservation_ids=expired)
        else:
            logger.debug("sweep_empty")
        return expired

    async def run_forever(self) -> None:
        """
        Background loop. Runs until cancelled during shutdown.
        A failed tick is logged and the next tick starts fresh.
        """
        logger.info("sweeper_started", interval_seconds=self._interval)
        while True:
            try:
                await self.sweep()
            except Exception as e:
                record_sweep(0, ok=False)
                logger.exception("sweeper_tick_failed", error=str(e))

            await asyncio.sleep(self._interval)
