"""
Slot catalog: every timeslot with its derived occupancy state.

Not cached. The catalog is the page a student loads right before holding
a slot, so it must reflect the ledger's committed state at read time.
"""

from collections import defaultdict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import contains_eager

from enrollment.core.clock import Clock, utcnow
from enrollment.models.enums import ReservationState
from enrollment.models.reservation import Reservation
from enrollment.models.teacher import Teacher
from enrollment.models.timeslot import Timeslot
from enrollment.schemas.slot import SlotView
from enrollment.services.ledger import blocking_condition, derive_slot_state


class SlotCatalog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    async def list_available_slots(self) -> list[SlotView]:
        now = self._clock()
        async with self._session_factory() as db:
            slots = (
                await db.execute(
                    select(Timeslot)
                    .join(Timeslot.teacher)
                    .options(contains_eager(Timeslot.teacher))
                    .order_by(Timeslot.weekday, Timeslot.start_time, Teacher.name)
                )
            ).scalars().all()

            rows = await db.execute(
                select(Reservation.timeslot_id, Reservation.state).where(blocking_condition(now))
            )
            states_by_slot: dict[int, list[ReservationState]] = defaultdict(list)
            for timeslot_id, state in rows.all():
                states_by_slot[timeslot_id].append(ReservationState(state))

        return [
            SlotView(
                slot_id=slot.id,
                teacher=slot.teacher.name,
                weekday=slot.weekday,
                time=slot.start_time,
                state=derive_slot_state(states_by_slot.get(slot.id, ())),
            )
            for slot in slots
        ]
