"""
Notification interface for confirmed reservations.

E-mail delivery lives outside this service; the reconciliation engine
only publishes `ReservationConfirmed` once per set of rows it actually
transitioned.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from enrollment.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReservationConfirmed:
    reservation_ids: list[int]
    student_email: Optional[str]
    teacher_name: Optional[str]
    slot_descriptions: list[str] = field(default_factory=list)
    payment_id: Optional[str] = None


class Notifier(ABC):
    @abstractmethod
    async def publish(self, event: ReservationConfirmed) -> None:
        pass


class LoggingNotifier(Notifier):
    """Default publisher: emits a structured log line for the mail worker to tail."""

    async def publish(self, event: ReservationConfirmed) -> None:
        logger.info(
            "reservation_confirmed_event",
            reservation_ids=event.reservation_ids,
            student_email=event.student_email,
            teacher=event.teacher_name,
            slots=event.slot_descriptions,
            payment_id=event.payment_id,
        )
