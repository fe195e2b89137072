"""
Reservation model: one attempt to claim one timeslot.

This table is the ledger and the only source of truth for availability.

Key design decisions:
- Rows are never resurrected. A cancelled row stays cancelled and a new
  attempt always inserts a new row, so the table doubles as an audit log.
- `group_correlation_id` is shared by every row created by one checkout and
  is echoed back by the payment processor; indexed for webhook lookups.
- Partial unique index on timeslot_id for confirmed/blocked rows is the
  storage-level backstop for the capacity-1 invariant. Unexpired pending
  holds cannot be expressed in an index (time-dependent), so the row lock on
  the timeslot is the primary guard.
- Composite (state, hold_expires_at) index serves the sweeper scan.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship

from enrollment.db.base import Base, TimestampMixin
from enrollment.models.enums import ReservationState

_SETTLED_STATES = "state IN ('confirmed', 'blocked')"


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    timeslot_id = Column(
        Integer,
        ForeignKey("timeslots.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_name = Column(String(255), nullable=True)
    student_email = Column(String(255), nullable=True)
    state = Column(String(20), nullable=False, default=ReservationState.PENDING.value)
    hold_expires_at = Column(DateTime(timezone=True), nullable=True)
    group_correlation_id = Column(String(64), nullable=True, index=True)
    payment_id = Column(String(64), nullable=True)
    intake_form = Column(JSON, nullable=False, default=dict)

    timeslot = relationship("Timeslot", back_populates="reservations")

    __table_args__ = (
        CheckConstraint(
            "state IN ('pending', 'confirmed', 'cancelled', 'blocked')",
            name="check_reservation_state",
        ),
        Index(
            "uq_reservations_settled_timeslot",
            "timeslot_id",
            unique=True,
            postgresql_where=text(_SETTLED_STATES),
            sqlite_where=text(_SETTLED_STATES),
        ),
        Index("ix_reservations_state_expiry", "state", "hold_expires_at"),
    )

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, slot={self.timeslot_id}, state={self.state}, group={self.group_correlation_id})>"
