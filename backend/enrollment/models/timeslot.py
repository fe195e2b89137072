"""
Timeslot model: a weekly (teacher, weekday, time) bookable unit.

Key design decisions:
- No capacity column. Capacity is 1 and is derived from the reservation
  ledger: a slot is occupied if any of its rows is in a blocking state.
- The timeslot row is the lock target. Hold and confirm transactions take
  SELECT ... FOR UPDATE on it before reading the ledger, which serializes
  writers per slot even when no ledger row exists yet.
"""

import calendar
from datetime import time

from sqlalchemy import Column, Integer, SmallInteger, Time, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship

from enrollment.db.base import Base, TimestampMixin


class Timeslot(Base, TimestampMixin):
    __tablename__ = "timeslots"

    id = Column(Integer, primary_key=True, index=True)
    teacher_id = Column(
        Integer,
        ForeignKey("teachers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    weekday = Column(SmallInteger, nullable=False)  # 0 = Monday
    start_time = Column(Time, nullable=False)

    teacher = relationship("Teacher", back_populates="timeslots", lazy="joined", innerjoin=True)
    reservations = relationship(
        "Reservation",
        back_populates="timeslot",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("teacher_id", "weekday", "start_time", name="uq_timeslot_teacher_weekday_time"),
        CheckConstraint("weekday BETWEEN 0 AND 6", name="check_timeslot_weekday"),
    )

    @staticmethod
    def describe(weekday: int, start_time: time) -> str:
        return f"{calendar.day_name[weekday]} {start_time.strftime('%H:%M')}"

    def __repr__(self) -> str:
        return f"<Timeslot(id={self.id}, teacher={self.teacher_id}, weekday={self.weekday}, time={self.start_time})>"
