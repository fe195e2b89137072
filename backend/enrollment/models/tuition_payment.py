"""
Monthly tuition payment, one row per student per month.

Written by upsert on (student_email, month_year): either the webhook
(approved processor payment for a monthly_tuition checkout) or an admin
setting the status by hand. `amount` is never NULL.
"""

from sqlalchemy import Column, Integer, String, Numeric, UniqueConstraint, CheckConstraint

from enrollment.db.base import Base, TimestampMixin
from enrollment.models.enums import TuitionStatus, PaymentSource


class TuitionPayment(Base, TimestampMixin):
    __tablename__ = "tuition_payments"

    id = Column(Integer, primary_key=True, index=True)
    student_email = Column(String(255), nullable=False, index=True)
    month_year = Column(String(7), nullable=False, index=True)  # YYYY-MM
    status = Column(String(20), nullable=False, default=TuitionStatus.PENDING.value)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    source = Column(String(20), nullable=False, default=PaymentSource.ADMIN.value)
    payment_id = Column(String(64), nullable=True)

    __table_args__ = (
        UniqueConstraint("student_email", "month_year", name="uq_tuition_student_month"),
        CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="check_tuition_status"),
        CheckConstraint("source IN ('processor', 'admin')", name="check_tuition_source"),
    )

    def __repr__(self) -> str:
        return f"<TuitionPayment(id={self.id}, student={self.student_email}, month={self.month_year}, status={self.status})>"
