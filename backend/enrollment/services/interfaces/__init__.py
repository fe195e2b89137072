"""
Service interfaces for dependency inversion.
Allows swapping implementations (real processor, fakes in tests) without
changing business logic.
"""

from .payment_processor import (
    PaymentProcessor,
    PaymentItem,
    PaymentIntent,
    PaymentDetails,
    ReturnUrls,
)
from .notifier import Notifier, LoggingNotifier, ReservationConfirmed

__all__ = [
    'PaymentProcessor', 'PaymentItem', 'PaymentIntent', 'PaymentDetails', 'ReturnUrls',
    'Notifier', 'LoggingNotifier', 'ReservationConfirmed',
]
