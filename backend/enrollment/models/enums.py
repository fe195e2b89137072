"""
Closed enumerations for every stored or wire-level state value.

Constructing one from an unknown string raises ValueError, so a typo in
a webhook payload or admin request fails loudly instead of falling
through to a default branch.
"""

import enum


class ReservationState(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


class SlotState(str, enum.Enum):
    """Display state of a timeslot, derived from its ledger rows."""

    AVAILABLE = "available"
    PENDING = "pending"
    BLOCKED = "blocked"
    OCCUPIED = "occupied"


class BookingMode(str, enum.Enum):
    INDIVIDUAL = "individual"
    GROUP_CLASS = "group_class"
    FLAT_FEE = "flat_fee"
    MONTHLY_TUITION = "monthly_tuition"

    @property
    def is_slot_backed(self) -> bool:
        return self is BookingMode.INDIVIDUAL


class AdminSlotState(str, enum.Enum):
    """Target states an administrator may force a slot into."""

    BLOCKED = "blocked"
    PENDING = "pending"
    AVAILABLE = "available"


class TuitionStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PaymentSource(str, enum.Enum):
    PROCESSOR = "processor"
    ADMIN = "admin"
