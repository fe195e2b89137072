"""
Monthly tuition ledger: one payment row per student per month.

Rows are upserted on (student_email, month_year). The upsert reads with
FOR UPDATE and inserts when missing; if a concurrent request inserted the
same row first, the unique constraint rejects ours and the second attempt
updates the row it now finds.
"""

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from enrollment.core.clock import Clock, utcnow
from enrollment.core.logging import get_logger
from enrollment.models.enums import TuitionStatus, PaymentSource
from enrollment.models.tuition_payment import TuitionPayment

logger = get_logger(__name__)

MAX_UPSERT_ATTEMPTS = 2


class TuitionService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    def current_month(self) -> str:
        return self._clock().strftime("%Y-%m")

    async def _upsert(self, student_email: str, month_year: str, values: dict[str, Any]) -> TuitionPayment:
        student_email = student_email.strip().lower()
        attempt = 1
        while True:
            try:
                return await self._upsert_once(student_email, month_year, values)
            except IntegrityError:
                if attempt >= MAX_UPSERT_ATTEMPTS:
                    raise
                logger.info("tuition_upsert_retry", student_email=student_email, month=month_year, attempt=attempt)
                attempt += 1

    async def _upsert_once(self, student_email: str, month_year: str, values: dict[str, Any]) -> TuitionPayment:
        async with self._session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    select(TuitionPayment)
                    .where(
                        TuitionPayment.student_email == student_email,
                        TuitionPayment.month_year == month_year,
                    )
                    .with_for_update()
                )
                payment = result.scalar_one_or_none()
                if payment is None:
                    payment = TuitionPayment(
                        student_email=student_email,
                        month_year=month_year,
                        amount=Decimal("0"),
                    )
                    db.add(payment)
                for key, value in values.items():
                    setattr(payment, key, value)
                await db.flush()
            await db.refresh(payment)
            return payment

    async def record_processor_payment(
        self,
        student_email: str,
        month_year: str,
        payment_id: str,
        amount: Optional[Decimal] = None,
    ) -> TuitionPayment:
        values: dict[str, Any] = {
            "status": TuitionStatus.APPROVED.value,
            "source": PaymentSource.PROCESSOR.value,
            "payment_id": payment_id,
        }
        if amount is not None:
            values["amount"] = amount
        payment = await self._upsert(student_email, month_year, values)
        logger.info(
            "tuition_payment_approved",
            student_email=payment.student_email,
            month=month_year,
            payment_id=payment_id,
        )
        return payment

    async def set_status(
        self,
        student_email: str,
        status: TuitionStatus,
        month_year: Optional[str] = None,
    ) -> TuitionPayment:
        """Manual status change. The existing amount is kept (0 for new rows)."""
        month_year = month_year or self.current_month()
        payment = await self._upsert(
            student_email,
            month_year,
            {"status": status.value, "source": PaymentSource.ADMIN.value},
        )
        logger.info("tuition_status_set", student_email=payment.student_email, month=month_year, status=status.value)
        return payment

    async def list_for_student(self, student_email: str, month_year: Optional[str] = None) -> list[TuitionPayment]:
        query = select(TuitionPayment).where(TuitionPayment.student_email == student_email.strip().lower())
        if month_year:
            query = query.where(TuitionPayment.month_year == month_year)
        async with self._session_factory() as db:
            result = await db.execute(query.order_by(TuitionPayment.month_year.desc()))
            return list(result.scalars().all())

    async def summary(self, month_year: Optional[str] = None) -> list[TuitionPayment]:
        month_year = month_year or self.current_month()
        async with self._session_factory() as db:
            result = await db.execute(
                select(TuitionPayment)
                .where(TuitionPayment.month_year == month_year)
                .order_by(TuitionPayment.updated_at.desc(), TuitionPayment.id.desc())
            )
            return list(result.scalars().all())
