"""
Public slot catalog.
"""

from fastapi import APIRouter, Depends

from enrollment.api.deps import get_slot_catalog
from enrollment.schemas.slot import SlotView
from enrollment.services.slot_catalog import SlotCatalog

router = APIRouter(prefix="/slots", tags=["Slots"])


@router.get("", response_model=list[SlotView])
async def list_slots_endpoint(catalog: SlotCatalog = Depends(get_slot_catalog)):
    """
    Every timeslot with its current state.
    Not cached: the state must match the ledger at read time.
    """
    return await catalog.list_available_slots()
