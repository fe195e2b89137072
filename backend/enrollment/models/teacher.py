"""
Teacher model. Timeslots reference it; deleting a teacher removes its
timeslots, which is refused while any of them has a paid reservation.
"""

from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship

from enrollment.db.base import Base, TimestampMixin


class Teacher(Base, TimestampMixin):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)

    timeslots = relationship(
        "Timeslot",
        back_populates="teacher",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Teacher(id={self.id}, name={self.name})>"
