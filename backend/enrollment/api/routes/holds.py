"""
Hold endpoint: claim one or more slots while the student pays.
"""

from fastapi import APIRouter, Depends, status

from enrollment.api.deps import get_hold_manager
from enrollment.schemas.hold import HoldCreate, HoldResponse, StudentInfo
from enrollment.services.hold_manager import HoldManager

router = APIRouter(prefix="/holds", tags=["Holds"])


@router.post("", response_model=HoldResponse, status_code=status.HTTP_201_CREATED)
async def create_hold_endpoint(
    hold_data: HoldCreate,
    manager: HoldManager = Depends(get_hold_manager),
):
    """
    Hold every requested slot, or none of them.

    Responses:
    - 201: all slots held; pending until paid or expired
    - 409: at least one slot is taken, nothing was held
    - 422: unknown slot ids or invalid payload
    """
    result = await manager.create_hold(
        hold_data.slot_ids,
        StudentInfo(name=hold_data.student_name, email=hold_data.student_email),
        intake_form=hold_data.intake_form,
    )
    return HoldResponse(
        group_correlation_id=result.group_correlation_id,
        reservation_ids=result.reservation_ids,
        hold_expires_at=result.hold_expires_at,
    )
