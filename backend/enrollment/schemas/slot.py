"""
Pydantic schemas for slot catalog and admin slot management.
"""

import datetime as dt
from typing import Optional
from pydantic import BaseModel, EmailStr, Field

from enrollment.models.enums import SlotState, AdminSlotState


class SlotView(BaseModel):
    slot_id: int
    teacher: str
    weekday: int
    time: dt.time
    state: SlotState


class TeacherCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class TeacherResponse(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}


class SlotCreate(BaseModel):
    teacher_id: int
    weekday: int = Field(..., ge=0, le=6)
    time: dt.time


class SlotUpdate(BaseModel):
    teacher_id: Optional[int] = None
    weekday: Optional[int] = Field(None, ge=0, le=6)
    time: Optional[dt.time] = None


class SlotResponse(BaseModel):
    id: int
    teacher_id: int
    weekday: int
    time: dt.time


class SlotStateChange(BaseModel):
    state: AdminSlotState
    student_name: Optional[str] = Field(None, max_length=255)
    student_email: Optional[EmailStr] = None
    hold_minutes: Optional[int] = Field(None, gt=0, le=60 * 24 * 30)
