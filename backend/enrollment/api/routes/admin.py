"""
Admin endpoints for teachers, timeslots and the reservation ledger.
Every route requires the X-Admin-Key header.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from enrollment.api.deps import get_admin_service
from enrollment.core.security import require_admin
from enrollment.models.enums import ReservationState
from enrollment.models.timeslot import Timeslot
from enrollment.schemas.hold import ReservationResponse
from enrollment.schemas.slot import (
    TeacherCreate,
    TeacherResponse,
    SlotCreate,
    SlotUpdate,
    SlotResponse,
    SlotStateChange,
)
from enrollment.services.admin_service import AdminService

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(require_admin)])


def _slot_response(slot: Timeslot) -> SlotResponse:
    return SlotResponse(id=slot.id, teacher_id=slot.teacher_id, weekday=slot.weekday, time=slot.start_time)


@router.get("/teachers", response_model=list[TeacherResponse])
async def list_teachers_endpoint(service: AdminService = Depends(get_admin_service)):
    return await service.list_teachers()


@router.post("/teachers", response_model=TeacherResponse, status_code=status.HTTP_201_CREATED)
async def create_teacher_endpoint(
    teacher_data: TeacherCreate,
    service: AdminService = Depends(get_admin_service),
):
    return await service.create_teacher(teacher_data.name)


@router.delete("/teachers/{teacher_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_teacher_endpoint(
    teacher_id: int,
    service: AdminService = Depends(get_admin_service),
):
    """Deletes the teacher with its slots and their ledger rows. 409 while any slot is paid."""
    await service.delete_teacher(teacher_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/slots", response_model=list[SlotResponse])
async def list_slots_endpoint(
    teacher_id: Optional[int] = Query(None),
    service: AdminService = Depends(get_admin_service),
):
    return [_slot_response(slot) for slot in await service.list_slots(teacher_id)]


@router.post("/slots", response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
async def create_slot_endpoint(
    slot_data: SlotCreate,
    service: AdminService = Depends(get_admin_service),
):
    return _slot_response(await service.create_slot(slot_data))


@router.put("/slots/{slot_id}", response_model=SlotResponse)
async def update_slot_endpoint(
    slot_id: int,
    slot_data: SlotUpdate,
    service: AdminService = Depends(get_admin_service),
):
    return _slot_response(await service.update_slot(slot_id, slot_data))


@router.delete("/slots/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_slot_endpoint(
    slot_id: int,
    service: AdminService = Depends(get_admin_service),
):
    await service.delete_slot(slot_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/slots/{slot_id}/release")
async def release_slot_endpoint(
    slot_id: int,
    service: AdminService = Depends(get_admin_service),
):
    """Cancel every live reservation on the slot, paid ones included. No refund is issued."""
    cancelled = await service.release_slot(slot_id)
    return {"slot_id": slot_id, "cancelled_reservation_ids": cancelled}


@router.post("/slots/{slot_id}/state", response_model=list[ReservationResponse])
async def set_slot_state_endpoint(
    slot_id: int,
    change: SlotStateChange,
    service: AdminService = Depends(get_admin_service),
):
    """
    Force a slot state.

    - available: same as release
    - blocked: indefinite block, no expiry
    - pending: manual hold expiring after `hold_minutes`
    Blocked and pending are refused with 409 while a paid reservation exists.
    """
    return await service.set_slot_state(slot_id, change)


@router.get("/reservations", response_model=list[ReservationResponse])
async def list_reservations_endpoint(
    slot_id: Optional[int] = Query(None),
    state: Optional[ReservationState] = Query(None),
    service: AdminService = Depends(get_admin_service),
):
    return await service.list_reservations(slot_id, state)


@router.post("/reservations/{reservation_id}/confirm", response_model=ReservationResponse)
async def confirm_reservation_endpoint(
    reservation_id: int,
    payment_id: Optional[str] = Query(None, max_length=64),
    service: AdminService = Depends(get_admin_service),
):
    """Manual reconciliation through the same conditional confirm as the webhook."""
    return await service.confirm_reservation(reservation_id, payment_id)
