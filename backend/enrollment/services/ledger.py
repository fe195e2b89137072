"""
Reservation ledger queries shared by every writer.

LOCKING PROTOCOL
================

Problem:
  Two students hold the same free slot at the same time. Both read "no
  blocking reservation", both insert a pending row. Result: double booking.
  A SELECT ... FOR UPDATE on the reservations table does not help here,
  because there is no row to lock yet.

Solution:
  Every writer that can create a blocking row (hold, confirm, admin state
  change) first locks the *timeslot* rows it touches:

    SELECT id FROM timeslots WHERE id IN (...) ORDER BY id FOR UPDATE

  and only then reads the ledger. Concurrent writers on the same slot
  queue behind the lock and see each other's committed rows. Locks are
  always taken in ascending id order so multi-slot group holds cannot
  deadlock against each other.

  Writers that only remove blocking rows (sweeper, release) use
  conditional updates (`WHERE state = 'pending'`) instead, so their effects
  commute with the confirm path: whichever commits first wins and the
  other updates zero rows.
"""

from datetime import datetime
from typing import Iterable

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession

from enrollment.models.enums import ReservationState, SlotState
from enrollment.models.reservation import Reservation
from enrollment.models.timeslot import Timeslot


def blocking_condition(now: datetime):
    """SQL predicate for rows that occupy their slot at `now`."""
    return or_(
        Reservation.state.in_([ReservationState.CONFIRMED.value, ReservationState.BLOCKED.value]),
        and_(
            Reservation.state == ReservationState.PENDING.value,
            Reservation.hold_expires_at.is_not(None),
            Reservation.hold_expires_at > now,
        ),
    )


def live_condition():
    """Rows an admin release would cancel: anything not yet cancelled."""
    return Reservation.state.in_([
        ReservationState.PENDING.value,
        ReservationState.CONFIRMED.value,
        ReservationState.BLOCKED.value,
    ])


async def lock_timeslots(db: AsyncSession, slot_ids: Iterable[int]) -> list[int]:
    """
    Lock timeslot rows in ascending id order.
    Returns the ids that exist; callers decide what a missing id means.
    """
    ids = sorted(set(slot_ids))
    if not ids:
        return []
    result = await db.execute(
        select(Timeslot.id)
        .where(Timeslot.id.in_(ids))
        .order_by(Timeslot.id)
        .with_for_update()
    )
    return list(result.scalars().all())


async def blocking_rows(db: AsyncSession, slot_ids: Iterable[int], now: datetime) -> list[Reservation]:
    ids = list(set(slot_ids))
    if not ids:
        return []
    result = await db.execute(
        select(Reservation)
        .where(Reservation.timeslot_id.in_(ids), blocking_condition(now))
        .order_by(Reservation.id)
    )
    return list(result.scalars().all())


def derive_slot_state(states: Iterable[ReservationState]) -> SlotState:
    """
    Fixed priority over the *blocking* rows of one slot:
    confirmed > blocked > live pending > available.
    A confirmed booking dominates even if a stale hold is still unswept.
    """
    present = set(states)
    if ReservationState.CONFIRMED in present:
        return SlotState.OCCUPIED
    if ReservationState.BLOCKED in present:
        return SlotState.BLOCKED
    if ReservationState.PENDING in present:
        return SlotState.PENDING
    return SlotState.AVAILABLE
