"""
Pydantic schemas for monthly tuition payments.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from enrollment.models.enums import TuitionStatus, PaymentSource
from enrollment.schemas.checkout import MONTH_PATTERN


class TuitionPaymentSet(BaseModel):
    student_email: EmailStr
    status: TuitionStatus
    month: Optional[str] = Field(None, pattern=MONTH_PATTERN)


class TuitionPaymentResponse(BaseModel):
    id: int
    student_email: str
    month_year: str
    status: TuitionStatus
    amount: Decimal
    source: PaymentSource
    payment_id: Optional[str]
    updated_at: datetime

    model_config = {"from_attributes": True}


class TuitionPaymentList(BaseModel):
    payments: list[TuitionPaymentResponse]
