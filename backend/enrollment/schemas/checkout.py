"""
Pydantic schemas for checkout (hold + payment preference).
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, EmailStr, Field, model_validator

from enrollment.models.enums import BookingMode

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class CheckoutCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    mode: BookingMode = BookingMode.INDIVIDUAL
    slot_ids: list[int] = Field(default_factory=list, max_length=20)
    student_name: str = Field(..., min_length=1, max_length=255)
    student_email: EmailStr
    form: dict[str, Any] = Field(default_factory=dict)
    month: Optional[str] = Field(None, pattern=MONTH_PATTERN)
    back_url_success: Optional[str] = None
    back_url_failure: Optional[str] = None

    @model_validator(mode="after")
    def check_mode_fields(self) -> "CheckoutCreate":
        if self.mode.is_slot_backed and not self.slot_ids:
            raise ValueError("slot_ids is required for individual bookings")
        if not self.mode.is_slot_backed and self.slot_ids:
            raise ValueError(f"slot_ids is not accepted for {self.mode.value} bookings")
        if self.mode is BookingMode.MONTHLY_TUITION and not self.month:
            raise ValueError("month (YYYY-MM) is required for monthly tuition")
        return self


class CheckoutResponse(BaseModel):
    checkout_url: str
    preference_id: str
    group_correlation_id: str
    reservation_ids: list[int]
    hold_expires_at: Optional[datetime] = None
