"""
Checkout endpoint: hold (for slot-backed modes) plus a processor payment page.
"""

from fastapi import APIRouter, Depends

from enrollment.api.deps import get_checkout_service
from enrollment.schemas.checkout import CheckoutCreate, CheckoutResponse
from enrollment.services.checkout_service import CheckoutService

router = APIRouter(prefix="/checkout", tags=["Checkout"])


@router.post("", response_model=CheckoutResponse)
async def checkout_endpoint(
    checkout_data: CheckoutCreate,
    service: CheckoutService = Depends(get_checkout_service),
):
    """
    Start a payment.

    For `individual` bookings the slots are held first and the hold is
    reported back with the checkout URL. If the processor call fails (502)
    the hold stays in place until it expires.
    """
    return await service.start_checkout(checkout_data)
