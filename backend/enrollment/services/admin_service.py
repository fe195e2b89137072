"""
Administrative operations on teachers, timeslots and the ledger.

Deletions are refused while a paid (confirmed) reservation exists. Child
rows are deleted explicitly rather than relying on ON DELETE CASCADE,
which not every backend enforces by default.

State changes that create a blocking row go through the same timeslot
lock as the hold and confirm paths.
"""

from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from enrollment.core.clock import Clock, utcnow
from enrollment.core.exceptions import NotFound, Conflict, SlotUnavailable
from enrollment.core.logging import get_logger
from enrollment.models.enums import AdminSlotState, ReservationState
from enrollment.models.reservation import Reservation
from enrollment.models.teacher import Teacher
from enrollment.models.timeslot import Timeslot
from enrollment.schemas.slot import SlotCreate, SlotUpdate, SlotStateChange
from enrollment.services.ledger import lock_timeslots, live_condition
from enrollment.services.reconciliation_service import ReconciliationEngine

logger = get_logger(__name__)

DEFAULT_ADMIN_HOLD = timedelta(minutes=10)


async def _confirmed_count(db: AsyncSession, slot_ids: list[int]) -> int:
    if not slot_ids:
        return 0
    result = await db.execute(
        select(func.count(Reservation.id)).where(
            Reservation.timeslot_id.in_(slot_ids),
            Reservation.state == ReservationState.CONFIRMED.value,
        )
    )
    return result.scalar_one()


class AdminService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        engine: ReconciliationEngine,
        clock: Clock = utcnow,
        hold_duration: timedelta = DEFAULT_ADMIN_HOLD,
    ):
        self._session_factory = session_factory
        self._engine = engine
        self._clock = clock
        self._hold_duration = hold_duration

    # Teachers

    async def list_teachers(self) -> list[Teacher]:
        async with self._session_factory() as db:
            result = await db.execute(select(Teacher).order_by(Teacher.name))
            return list(result.scalars().all())

    async def create_teacher(self, name: str) -> Teacher:
        name = name.strip()
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    teacher = Teacher(name=name)
                    db.add(teacher)
                    await db.flush()
                    teacher_id = teacher.id
        except IntegrityError as e:
            raise Conflict(f"Teacher '{name}' already exists") from e

        logger.info("teacher_created", teacher_id=teacher_id, name=name)
        return teacher

    async def delete_teacher(self, teacher_id: int) -> None:
        async with self._session_factory() as db:
            async with db.begin():
                teacher = await db.get(Teacher, teacher_id, with_for_update=True)
                if teacher is None:
                    raise NotFound(f"Teacher {teacher_id} not found")

                slot_ids = list(
                    (await db.execute(select(Timeslot.id).where(Timeslot.teacher_id == teacher_id))).scalars().all()
                )
                await lock_timeslots(db, slot_ids)
                if await _confirmed_count(db, slot_ids):
                    raise Conflict(
                        "Teacher has paid reservations; release them first",
                        {"teacher_id": teacher_id},
                    )

                if slot_ids:
                    await db.execute(delete(Reservation).where(Reservation.timeslot_id.in_(slot_ids)))
                    await db.execute(delete(Timeslot).where(Timeslot.id.in_(slot_ids)))
                await db.execute(delete(Teacher).where(Teacher.id == teacher_id))

        logger.info("teacher_deleted", teacher_id=teacher_id, slot_ids=slot_ids)

    # Timeslots

    async def list_slots(self, teacher_id: Optional[int] = None) -> list[Timeslot]:
        query = select(Timeslot).order_by(Timeslot.weekday, Timeslot.start_time, Timeslot.id)
        if teacher_id is not None:
            query = query.where(Timeslot.teacher_id == teacher_id)
        async with self._session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().unique().all())

    async def create_slot(self, data: SlotCreate) -> Timeslot:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    if await db.get(Teacher, data.teacher_id) is None:
                        raise NotFound(f"Teacher {data.teacher_id} not found")
                    slot = Timeslot(teacher_id=data.teacher_id, weekday=data.weekday, start_time=data.time)
                    db.add(slot)
                    await db.flush()
        except IntegrityError as e:
            raise Conflict("Teacher already has a slot at that weekday and time") from e

        logger.info("slot_created", slot_id=slot.id, teacher_id=slot.teacher_id, weekday=slot.weekday)
        return slot

    async def update_slot(self, slot_id: int, data: SlotUpdate) -> Timeslot:
        try:
            async with self._session_factory() as db:
                async with db.begin():
                    slot = await db.get(Timeslot, slot_id, with_for_update=True)
                    if slot is None:
                        raise NotFound(f"Slot {slot_id} not found")
                    if data.teacher_id is not None:
                        if await db.get(Teacher, data.teacher_id) is None:
                            raise NotFound(f"Teacher {data.teacher_id} not found")
                        slot.teacher_id = data.teacher_id
                    if data.weekday is not None:
                        slot.weekday = data.weekday
                    if data.time is not None:
                        slot.start_time = data.time
                    await db.flush()
        except IntegrityError as e:
            raise Conflict("Teacher already has a slot at that weekday and time") from e

        logger.info("slot_updated", slot_id=slot_id)
        return slot

    async def delete_slot(self, slot_id: int) -> None:
        async with self._session_factory() as db:
            async with db.begin():
                if not await lock_timeslots(db, [slot_id]):
                    raise NotFound(f"Slot {slot_id} not found")
                if await _confirmed_count(db, [slot_id]):
                    raise Conflict("Slot has a paid reservation; release it first", {"slot_id": slot_id})

                await db.execute(delete(Reservation).where(Reservation.timeslot_id == slot_id))
                await db.execute(delete(Timeslot).where(Timeslot.id == slot_id))

        logger.info("slot_deleted", slot_id=slot_id)

    # Slot state

    async def release_slot(self, slot_id: int) -> list[int]:
        """Cancel every live row on the slot, confirmed ones included. No refund is issued."""
        async with self._session_factory() as db:
            async with db.begin():
                if not await lock_timeslots(db, [slot_id]):
                    raise NotFound(f"Slot {slot_id} not found")
                await self._warn_paid_release(db, slot_id)
                result = await db.execute(
                    update(Reservation)
                    .where(Reservation.timeslot_id == slot_id, live_condition())
                    .values(state=ReservationState.CANCELLED.value)
                    .returning(Reservation.id)
                    .execution_options(synchronize_session=False)
                )
                cancelled_ids = sorted(result.scalars().all())

        logger.info("slot_released", slot_id=slot_id, reservation_ids=cancelled_ids)
        return cancelled_ids

    async def _warn_paid_release(self, db: AsyncSession, slot_id: int) -> None:
        paid = (
            await db.execute(
                select(Reservation.id, Reservation.payment_id).where(
                    Reservation.timeslot_id == slot_id,
                    Reservation.state == ReservationState.CONFIRMED.value,
                )
            )
        ).all()
        for row in paid:
            logger.warning(
                "confirmed_reservation_released",
                slot_id=slot_id,
                reservation_id=row.id,
                payment_id=row.payment_id,
            )

    async def set_slot_state(self, slot_id: int, change: SlotStateChange) -> list[Reservation]:
        """
        Force a slot into blocked, pending or available.

        Returns the slot's live rows after the change (empty for available).
        """
        if change.state is AdminSlotState.AVAILABLE:
            await self.release_slot(slot_id)
            return []

        now = self._clock()
        async with self._session_factory() as db:
            async with db.begin():
                if not await lock_timeslots(db, [slot_id]):
                    raise NotFound(f"Slot {slot_id} not found")
                if await _confirmed_count(db, [slot_id]):
                    raise SlotUnavailable(
                        [slot_id],
                        "Slot has a paid reservation; release it first",
                    )

                await db.execute(
                    update(Reservation)
                    .where(
                        Reservation.timeslot_id == slot_id,
                        Reservation.state.in_([
                            ReservationState.PENDING.value,
                            ReservationState.BLOCKED.value,
                        ]),
                    )
                    .values(state=ReservationState.CANCELLED.value)
                    .execution_options(synchronize_session=False)
                )

                if change.state is AdminSlotState.BLOCKED:
                    row = Reservation(
                        timeslot_id=slot_id,
                        student_name=change.student_name,
                        student_email=change.student_email,
                        state=ReservationState.BLOCKED.value,
                        hold_expires_at=None,
                        intake_form={},
                    )
                else:
                    duration = (
                        timedelta(minutes=change.hold_minutes) if change.hold_minutes else self._hold_duration
                    )
                    row = Reservation(
                        timeslot_id=slot_id,
                        student_name=change.student_name,
                        student_email=change.student_email,
                        state=ReservationState.PENDING.value,
                        hold_expires_at=now + duration,
                        intake_form={},
                    )
                db.add(row)
                await db.flush()
                await db.refresh(row)

        logger.info("slot_state_set", slot_id=slot_id, state=change.state.value, reservation_id=row.id)
        return [row]

    # Ledger

    async def list_reservations(
        self,
        slot_id: Optional[int] = None,
        state: Optional[ReservationState] = None,
    ) -> list[Reservation]:
        query = select(Reservation).order_by(Reservation.id)
        if slot_id is not None:
            query = query.where(Reservation.timeslot_id == slot_id)
        if state is not None:
            query = query.where(Reservation.state == state.value)
        async with self._session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def _get_reservation(self, reservation_id: int) -> Reservation:
        async with self._session_factory() as db:
            reservation = await db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFound(f"Reservation {reservation_id} not found")
        return reservation

    async def confirm_reservation(self, reservation_id: int, payment_id: Optional[str] = None) -> Reservation:
        """Manual reconciliation. Re-confirming a confirmed row is a no-op."""
        reservation = await self._get_reservation(reservation_id)
        if reservation.state == ReservationState.CONFIRMED.value:
            return reservation

        outcome = await self._engine.confirm([reservation_id], payment_id)
        if outcome.displaced_ids:
            raise Conflict(
                "Slot is held by another reservation",
                {"reservation_id": reservation_id, "slot_id": reservation.timeslot_id},
            )

        reservation = await self._get_reservation(reservation_id)
        if reservation.state != ReservationState.CONFIRMED.value:
            raise Conflict(
                f"Reservation is {reservation.state} and cannot be confirmed",
                {"reservation_id": reservation_id},
            )
        logger.info("reservation_confirmed_manually", reservation_id=reservation_id)
        return reservation
