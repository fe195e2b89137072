"""
Payment reconciliation engine.

Applies asynchronous, at-least-once, possibly out-of-order payment
notifications to the reservation ledger.

CONFIRMATION STRATEGY: Conditional Update
=========================================

Problem:
  The processor may deliver the same approved payment several times, and a
  delivery may race the expiry sweeper for the same pending row. A naive
  "load row, set confirmed, save" confirms twice (two welcome e-mails) or
  resurrects a hold the sweeper already cancelled.

Solution:
  UPDATE reservations
     SET state = 'confirmed', hold_expires_at = NULL, payment_id = :pid
   WHERE id IN (:eligible) AND state = 'pending'
  RETURNING id

  Only rows still pending are touched. A duplicate delivery finds them
  confirmed and updates nothing; a delivery that lost the race to the
  sweeper finds them cancelled and updates nothing. The RETURNING set is
  exactly the rows this call transitioned, and a notification is published
  only when it is non-empty.

  Before the update the involved timeslots are locked (same protocol as the
  hold path). A pending row whose hold lapsed and whose slot has since been
  claimed by another student is not eligible: confirming it would put two
  blocking rows on one slot. It is logged as a paid-but-displaced
  reservation for manual admin recovery.

Network calls (secondary payment lookup) always complete before the
confirm transaction opens.
"""

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Mapping, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from enrollment.core.clock import Clock, utcnow
from enrollment.core.exceptions import ReconciliationMiss
from enrollment.core.logging import get_logger
from enrollment.core.metrics import record_reconciliation
from enrollment.models.enums import BookingMode, ReservationState
from enrollment.models.reservation import Reservation
from enrollment.models.teacher import Teacher
from enrollment.models.timeslot import Timeslot
from enrollment.schemas.webhook import (
    APPROVED_STATUS,
    CheckoutMetadata,
    UnrecognizedNotification,
    parse_metadata,
    parse_notification,
)
from enrollment.services.cache_service import RedisPaymentMarkers
from enrollment.services.interfaces.notifier import Notifier, ReservationConfirmed
from enrollment.services.interfaces.payment_processor import PaymentProcessor
from enrollment.services.ledger import lock_timeslots, blocking_rows
from enrollment.services.tuition_service import TuitionService

logger = get_logger(__name__)


class ReconciliationOutcome(str, enum.Enum):
    IGNORED = "ignored"
    NOT_APPROVED = "not_approved"
    DUPLICATE = "duplicate"
    NO_OP = "no_op"
    MISS = "miss"
    CONFIRMED = "confirmed"
    ALREADY_SETTLED = "already_settled"


@dataclass
class ConfirmOutcome:
    confirmed_ids: list[int] = field(default_factory=list)
    displaced_ids: list[int] = field(default_factory=list)
    settled_ids: list[int] = field(default_factory=list)
    lapsed_ids: list[int] = field(default_factory=list)


@dataclass
class ReconciliationResult:
    outcome: ReconciliationOutcome
    payment_id: Optional[str] = None
    confirmed_ids: list[int] = field(default_factory=list)


class ReconciliationEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        processor: PaymentProcessor,
        notifier: Notifier,
        tuition: Optional[TuitionService] = None,
        payment_markers: Optional[RedisPaymentMarkers] = None,
        clock: Clock = utcnow,
        verify_payments: bool = False,
    ):
        self._session_factory = session_factory
        self._processor = processor
        self._verify_payments = verify_payments
        self._notifier = notifier
        self._tuition = tuition or TuitionService(session_factory, clock)
        self._markers = payment_markers
        self._clock = clock

    async def on_payment_notification(
        self,
        body: Any,
        query: Optional[Mapping[str, str]] = None,
    ) -> ReconciliationResult:
        """
        Handle one webhook delivery.

        Returns the outcome for logging and metrics. Storage and processor
        failures propagate; the webhook route acknowledges regardless.
        """
        notification = parse_notification(body, query)

        if isinstance(notification, UnrecognizedNotification):
            logger.info("webhook_ignored", reason=notification.reason, event_type=notification.event_type)
            return self._finish(ReconciliationResult(ReconciliationOutcome.IGNORED))

        payment_id = notification.payment_id
        if notification.status is not None and not notification.is_approved:
            logger.info("webhook_not_approved", payment_id=payment_id, status=notification.status)
            return self._finish(ReconciliationResult(ReconciliationOutcome.NOT_APPROVED, payment_id))

        if self._markers and await self._markers.seen(payment_id):
            logger.info("webhook_duplicate_payment", payment_id=payment_id)
            return self._finish(ReconciliationResult(ReconciliationOutcome.DUPLICATE, payment_id))

        status = notification.status
        metadata = notification.metadata
        amount: Optional[Decimal] = None

        if self._verify_payments or metadata is None or status is None:
            # The processor resource is authoritative; inline fields only fill gaps when unverified
            details = await self._processor.get_payment_by_id(payment_id)
            status = (details.status or "").lower() or None
            fetched = parse_metadata(details.metadata)
            metadata = fetched if self._verify_payments else (metadata or fetched)
            amount = details.amount
            logger.info("payment_details_fetched", payment_id=payment_id, status=status)

        if status != APPROVED_STATUS:
            logger.info("webhook_not_approved", payment_id=payment_id, status=status)
            return self._finish(ReconciliationResult(ReconciliationOutcome.NOT_APPROVED, payment_id))

        try:
            result = await self._apply(payment_id, metadata, amount)
        except ReconciliationMiss as miss:
            logger.warning("reconciliation_miss", payment_id=payment_id, detail=miss.detail, **miss.extra)
            return self._finish(ReconciliationResult(ReconciliationOutcome.MISS, payment_id))

        if self._markers:
            await self._markers.mark(payment_id)
        return self._finish(result)

    def _finish(self, result: ReconciliationResult) -> ReconciliationResult:
        record_reconciliation(result.outcome.value, confirmed=len(result.confirmed_ids))
        return result

    async def _apply(
        self,
        payment_id: str,
        metadata: Optional[CheckoutMetadata],
        amount: Optional[Decimal],
    ) -> ReconciliationResult:
        if metadata is None:
            raise ReconciliationMiss("Approved payment carries no correlation metadata")

        reservation_ids = await self._resolve(metadata)

        if not reservation_ids:
            if metadata.mode is not None and not metadata.mode.is_slot_backed:
                await self._record_non_slot_payment(payment_id, metadata, amount)
                return ReconciliationResult(ReconciliationOutcome.NO_OP, payment_id)
            raise ReconciliationMiss(
                "No reservations match the payment correlation",
                {
                    "group_correlation_id": metadata.group_correlation_id,
                    "reservation_ids": metadata.reservation_ids,
                },
            )

        outcome = await self.confirm(reservation_ids, payment_id)

        if outcome.confirmed_ids:
            return ReconciliationResult(ReconciliationOutcome.CONFIRMED, payment_id, outcome.confirmed_ids)
        if outcome.settled_ids:
            logger.info("payment_already_settled", payment_id=payment_id, reservation_ids=outcome.settled_ids)
            return ReconciliationResult(ReconciliationOutcome.ALREADY_SETTLED, payment_id)

        # Hold lapsed before the payment landed: cancelled by the sweeper or lost to another student
        raise ReconciliationMiss(
            "Paid reservations are no longer pending",
            {"lapsed_ids": outcome.lapsed_ids, "displaced_ids": outcome.displaced_ids},
        )

    async def _resolve(self, metadata: CheckoutMetadata) -> list[int]:
        """Explicit reservation ids win; the group correlation id is the fallback."""
        async with self._session_factory() as db:
            if metadata.reservation_ids:
                result = await db.execute(
                    select(Reservation.id).where(Reservation.id.in_(metadata.reservation_ids))
                )
                ids = list(result.scalars().all())
                if ids:
                    return sorted(ids)

            if metadata.group_correlation_id:
                result = await db.execute(
                    select(Reservation.id).where(
                        Reservation.group_correlation_id == metadata.group_correlation_id
                    )
                )
                return sorted(result.scalars().all())

        return []

    async def _record_non_slot_payment(
        self,
        payment_id: str,
        metadata: CheckoutMetadata,
        amount: Optional[Decimal],
    ) -> None:
        if metadata.mode is BookingMode.MONTHLY_TUITION:
            if metadata.student_email and metadata.month:
                await self._tuition.record_processor_payment(
                    metadata.student_email, metadata.month, payment_id, amount
                )
            else:
                logger.warning(
                    "tuition_payment_incomplete_metadata",
                    payment_id=payment_id,
                    group_correlation_id=metadata.group_correlation_id,
                )
        logger.info(
            "non_slot_payment_acknowledged",
            payment_id=payment_id,
            mode=metadata.mode.value,
            group_correlation_id=metadata.group_correlation_id,
        )

    async def confirm(self, reservation_ids: list[int], payment_id: Optional[str]) -> ConfirmOutcome:
        """
        Transition the given reservations pending -> confirmed.

        Safe to call any number of times. Publishes ReservationConfirmed for
        the rows this call transitioned, and nothing when it transitioned none.
        """
        ids = sorted(set(reservation_ids))
        now = self._clock()
        outcome = ConfirmOutcome()
        confirmed_rows: list[Any] = []

        async with self._session_factory() as db:
            async with db.begin():
                slot_ids = (
                    await db.execute(
                        select(Reservation.timeslot_id).where(Reservation.id.in_(ids)).distinct()
                    )
                ).scalars().all()
                if not slot_ids:
                    return outcome

                await lock_timeslots(db, slot_ids)

                # Re-read after the lock: a concurrent writer may have committed while we waited
                rows = (
                    await db.execute(
                        select(Reservation.id, Reservation.timeslot_id, Reservation.state).where(
                            Reservation.id.in_(ids)
                        )
                    )
                ).all()
                pending = [(r.id, r.timeslot_id) for r in rows if r.state == ReservationState.PENDING.value]
                outcome.settled_ids = sorted(r.id for r in rows if r.state == ReservationState.CONFIRMED.value)
                outcome.lapsed_ids = sorted(
                    r.id for r in rows
                    if r.state not in (ReservationState.PENDING.value, ReservationState.CONFIRMED.value)
                )
                competitors = await blocking_rows(db, slot_ids, now)
                taken_by_other = {r.timeslot_id for r in competitors if r.id not in ids}

                eligible = [rid for rid, slot_id in pending if slot_id not in taken_by_other]
                outcome.displaced_ids = sorted(rid for rid, slot_id in pending if slot_id in taken_by_other)

                if eligible:
                    result = await db.execute(
                        update(Reservation)
                        .where(
                            Reservation.id.in_(eligible),
                            Reservation.state == ReservationState.PENDING.value,
                        )
                        .values(
                            state=ReservationState.CONFIRMED.value,
                            hold_expires_at=None,
                            payment_id=payment_id,
                        )
                        .returning(Reservation.id)
                        .execution_options(synchronize_session=False)
                    )
                    outcome.confirmed_ids = sorted(result.scalars().all())

                if outcome.confirmed_ids:
                    confirmed_rows = (
                        await db.execute(
                            select(
                                Reservation.id,
                                Reservation.student_email,
                                Teacher.name,
                                Timeslot.weekday,
                                Timeslot.start_time,
                            )
                            .join(Timeslot, Reservation.timeslot_id == Timeslot.id)
                            .join(Teacher, Timeslot.teacher_id == Teacher.id)
                            .where(Reservation.id.in_(outcome.confirmed_ids))
                            .order_by(Timeslot.weekday, Timeslot.start_time)
                        )
                    ).all()

        if outcome.displaced_ids:
            logger.error(
                "paid_reservation_displaced",
                payment_id=payment_id,
                reservation_ids=outcome.displaced_ids,
            )

        if outcome.confirmed_ids:
            logger.info(
                "reservations_confirmed",
                payment_id=payment_id,
                reservation_ids=outcome.confirmed_ids,
            )
            await self._publish(confirmed_rows, payment_id)

        return outcome

    async def _publish(self, rows: list[Any], payment_id: Optional[str]) -> None:
        teachers = list(dict.fromkeys(row.name for row in rows))
        event = ReservationConfirmed(
            reservation_ids=[row.id for row in rows],
            student_email=next((row.student_email for row in rows if row.student_email), None),
            teacher_name=", ".join(teachers) if teachers else None,
            slot_descriptions=[
                Timeslot.describe(row.weekday, row.start_time) for row in rows
            ],
            payment_id=payment_id,
        )
        try:
            await self._notifier.publish(event)
        except Exception:
            # The confirmation is committed; a lost notification is an operator task
            logger.exception("notification_publish_failed", reservation_ids=event.reservation_ids)
