"""
Hold manager: time-boxed provisional claims on one or more slots.

CONCURRENCY STRATEGY: Pessimistic Locking, All-or-Nothing
=========================================================

Problem:
  Two students submit checkout for the same free slot at the same time.
  Both read "no blocking reservation", both insert a pending hold.
  Result: double booking, and one of them pays for a lesson that isn't theirs.

Solution:
  One transaction per hold request:

  1. SELECT id FROM timeslots WHERE id IN (...) ORDER BY id FOR UPDATE
  2. Read blocking reservations for those slots (confirmed, blocked,
     or pending with an unexpired hold)
  3. If any slot is taken -> raise SlotUnavailable, the transaction rolls
     back and nothing is written for *any* requested slot
  4. Otherwise insert one pending row per slot sharing a new
     group_correlation_id, hold_expires_at = now + hold duration

  Unlike the optimistic version-counter approach, there is no retry loop:
  a slot that is taken stays taken until its hold expires, so retrying
  inside the request would only delay the 409. The caller decides.

  The partial unique index on confirmed/blocked rows is the final safety
  net; an IntegrityError is reported as SlotUnavailable too.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from enrollment.core.clock import Clock, utcnow
from enrollment.core.exceptions import SlotUnavailable, StorageError, ValidationError
from enrollment.core.logging import get_logger
from enrollment.core.metrics import record_hold_attempt, hold_latency
from enrollment.models.enums import ReservationState
from enrollment.models.reservation import Reservation
from enrollment.schemas.hold import StudentInfo
from enrollment.services.ledger import lock_timeslots, blocking_rows

logger = get_logger(__name__)

DEFAULT_HOLD_DURATION = timedelta(minutes=10)


@dataclass
class HoldResult:
    group_correlation_id: str
    reservation_ids: list[int]
    hold_expires_at: datetime


class HoldManager:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock = utcnow,
        hold_duration: timedelta = DEFAULT_HOLD_DURATION,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._hold_duration = hold_duration

    async def create_hold(
        self,
        slot_ids: Iterable[int],
        student: StudentInfo,
        intake_form: Optional[dict[str, Any]] = None,
    ) -> HoldResult:
        """
        Hold every requested slot or none of them.

        Raises:
            ValidationError: empty request or unknown slot ids
            SlotUnavailable: at least one slot has a blocking reservation
            StorageError: the database failed; nothing was written
        """
        requested = sorted(set(slot_ids))
        if not requested:
            raise ValidationError("At least one slot is required")

        now = self._clock()
        expires_at = now + self._hold_duration
        group_id = uuid.uuid4().hex
        start = time.perf_counter()

        try:
            async with self._session_factory() as db:
                async with db.begin():
                    existing = await lock_timeslots(db, requested)
                    missing = set(requested) - set(existing)
                    if missing:
                        raise ValidationError(f"Unknown slot ids: {sorted(missing)}")

                    taken = await blocking_rows(db, requested, now)
                    if taken:
                        raise SlotUnavailable(sorted({r.timeslot_id for r in taken}))

                    reservations = [
                        Reservation(
                            timeslot_id=slot_id,
                            student_name=student.name,
                            student_email=student.email,
                            state=ReservationState.PENDING.value,
                            hold_expires_at=expires_at,
                            group_correlation_id=group_id,
                            intake_form=intake_form or {},
                        )
                        for slot_id in requested
                    ]
                    db.add_all(reservations)
                    await db.flush()
                    reservation_ids = [r.id for r in reservations]

        except SlotUnavailable as e:
            record_hold_attempt("conflict")
            logger.warning("hold_rejected", slot_ids=requested, unavailable=e.slot_ids)
            raise
        except IntegrityError as e:
            record_hold_attempt("conflict")
            logger.warning("hold_rejected_by_constraint", slot_ids=requested, error=str(e.orig))
            raise SlotUnavailable(requested) from e
        except SQLAlchemyError as e:
            record_hold_attempt("error")
            logger.error("hold_storage_error", slot_ids=requested, error=str(e))
            raise StorageError("Reservation store unavailable") from e
        finally:
            hold_latency.observe(time.perf_counter() - start)

        record_hold_attempt("success")
        logger.info(
            "hold_created",
            group_correlation_id=group_id,
            reservation_ids=reservation_ids,
            slot_ids=requested,
            hold_expires_at=expires_at.isoformat(),
        )
        return HoldResult(
            group_correlation_id=group_id,
            reservation_ids=reservation_ids,
            hold_expires_at=expires_at,
        )
