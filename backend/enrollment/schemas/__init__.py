from enrollment.schemas.slot import (
    SlotView, TeacherCreate, TeacherResponse, SlotCreate, SlotUpdate, SlotResponse, SlotStateChange,
)
from enrollment.schemas.hold import StudentInfo, HoldCreate, HoldResponse, ReservationResponse
from enrollment.schemas.checkout import CheckoutCreate, CheckoutResponse
from enrollment.schemas.tuition import TuitionPaymentSet, TuitionPaymentResponse, TuitionPaymentList

__all__ = [
    "SlotView", "TeacherCreate", "TeacherResponse", "SlotCreate", "SlotUpdate", "SlotResponse",
    "SlotStateChange",
    "StudentInfo", "HoldCreate", "HoldResponse", "ReservationResponse",
    "CheckoutCreate", "CheckoutResponse",
    "TuitionPaymentSet", "TuitionPaymentResponse", "TuitionPaymentList",
]
