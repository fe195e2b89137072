"""
Checkout orchestration: hold the slots, then ask the processor for a
payment page that carries the hold's correlation back to us.

The hold commits before the processor is called. If the processor call
fails the hold is not rolled back; it lapses on its own after the hold
duration and the sweeper reclaims it. Holding row locks across an
external HTTP round-trip would serialize every checkout behind the
slowest processor response.
"""

import uuid
from typing import Optional

from enrollment.core.config import Settings
from enrollment.core.exceptions import UpstreamProcessorError
from enrollment.core.logging import get_logger
from enrollment.models.enums import BookingMode
from enrollment.schemas.checkout import CheckoutCreate, CheckoutResponse
from enrollment.schemas.hold import StudentInfo
from enrollment.schemas.webhook import CheckoutMetadata
from enrollment.services.hold_manager import HoldManager, HoldResult
from enrollment.services.interfaces.payment_processor import PaymentProcessor, PaymentItem, ReturnUrls

logger = get_logger(__name__)


class CheckoutService:
    def __init__(self, hold_manager: HoldManager, processor: PaymentProcessor, settings: Settings):
        self._holds = hold_manager
        self._processor = processor
        self._settings = settings

    async def start_checkout(self, request: CheckoutCreate) -> CheckoutResponse:
        """
        Raises:
            SlotUnavailable / ValidationError / StorageError: from the hold
            UpstreamProcessorError: the processor refused or was unreachable
        """
        hold: Optional[HoldResult] = None
        if request.mode.is_slot_backed:
            hold = await self._holds.create_hold(
                request.slot_ids,
                StudentInfo(name=request.student_name, email=request.student_email),
                intake_form=request.form,
            )
            group_id = hold.group_correlation_id
            reservation_ids = hold.reservation_ids
        else:
            group_id = uuid.uuid4().hex
            reservation_ids = []

        metadata = CheckoutMetadata(
            group_correlation_id=group_id,
            reservation_ids=reservation_ids,
            mode=request.mode,
            student_email=str(request.student_email).lower(),
            month=request.month if request.mode is BookingMode.MONTHLY_TUITION else None,
        )

        try:
            intent = await self._processor.create_payment_intent(
                items=[
                    PaymentItem(
                        title=request.title,
                        unit_price=request.price,
                        currency=(request.currency or self._settings.DEFAULT_CURRENCY).upper(),
                    )
                ],
                metadata=metadata.to_processor_metadata(),
                return_urls=ReturnUrls(
                    success=request.back_url_success or self._settings.DEFAULT_BACK_URL_SUCCESS,
                    failure=request.back_url_failure or self._settings.DEFAULT_BACK_URL_FAILURE,
                ),
                external_reference=group_id,
            )
        except UpstreamProcessorError:
            logger.warning(
                "checkout_processor_failed",
                group_correlation_id=group_id,
                reservation_ids=reservation_ids,
                mode=request.mode.value,
            )
            raise

        logger.info(
            "checkout_started",
            group_correlation_id=group_id,
            preference_id=intent.id,
            reservation_ids=reservation_ids,
            mode=request.mode.value,
        )
        return CheckoutResponse(
            checkout_url=intent.checkout_url,
            preference_id=intent.id,
            group_correlation_id=group_id,
            reservation_ids=reservation_ids,
            hold_expires_at=hold.hold_expires_at if hold else None,
        )
