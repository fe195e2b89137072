"""
Pydantic schemas for hold requests and ledger rows.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, EmailStr, Field

from enrollment.models.enums import ReservationState


class StudentInfo(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr


class HoldCreate(BaseModel):
    slot_ids: list[int] = Field(..., min_length=1, max_length=20)
    student_name: str = Field(..., min_length=1, max_length=255)
    student_email: EmailStr
    intake_form: dict[str, Any] = Field(default_factory=dict)


class HoldResponse(BaseModel):
    group_correlation_id: str
    reservation_ids: list[int]
    hold_expires_at: datetime


class ReservationResponse(BaseModel):
    id: int
    timeslot_id: int
    student_name: Optional[str]
    student_email: Optional[str]
    state: ReservationState
    hold_expires_at: Optional[datetime]
    group_correlation_id: Optional[str]
    payment_id: Optional[str]
    intake_form: dict[str, Any]
    created_at: datetime

    model_config = {"from_attributes": True}
