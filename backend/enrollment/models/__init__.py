from enrollment.models.teacher import Teacher
from enrollment.models.timeslot import Timeslot
from enrollment.models.reservation import Reservation
from enrollment.models.tuition_payment import TuitionPayment

__all__ = ["Teacher", "Timeslot", "Reservation", "TuitionPayment"]
