"""
Tests for the public slot catalog.
"""

import pytest
from httpx import AsyncClient

from conftest import approved_webhook
from enrollment.models.enums import SlotState
from enrollment.schemas.hold import StudentInfo
from enrollment.schemas.slot import SlotStateChange

ANA = StudentInfo(name="Ana", email="ana@x.com")


def _states(views) -> dict[int, SlotState]:
    return {v.slot_id: v.state for v in views}


@pytest.mark.asyncio
async def test_list_slots(client: AsyncClient, slots):
    response = await client.get("/slots")
    assert response.status_code == 200
    data = response.json()
    assert [s["slot_id"] for s in data] == [s.id for s in slots]
    assert data[0] == {
        "slot_id": slots[0].id,
        "teacher": "Paula",
        "weekday": 0,
        "time": "18:00:00",
        "state": "available",
    }


@pytest.mark.asyncio
async def test_list_slots_empty(client: AsyncClient):
    response = await client.get("/slots")
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_slot_states_follow_ledger(catalog, hold_manager, reconciliation, admin_service, slots):
    hold = await hold_manager.create_hold([slots[0].id], ANA)
    await hold_manager.create_hold([slots[1].id], ANA)
    await admin_service.set_slot_state(slots[2].id, SlotStateChange(state="blocked"))
    await reconciliation.on_payment_notification(approved_webhook("p1", group_id=hold.group_correlation_id))

    states = _states(await catalog.list_available_slots())

    assert states == {
        slots[0].id: SlotState.OCCUPIED,
        slots[1].id: SlotState.PENDING,
        slots[2].id: SlotState.BLOCKED,
    }


@pytest.mark.asyncio
async def test_expired_hold_shows_available(catalog, hold_manager, clock, slots):
    await hold_manager.create_hold([slots[0].id], ANA)
    clock.advance(minutes=10, seconds=1)

    states = _states(await catalog.list_available_slots())
    assert states[slots[0].id] is SlotState.AVAILABLE


@pytest.mark.asyncio
async def test_released_slot_shows_available(catalog, hold_manager, admin_service, slots):
    await hold_manager.create_hold([slots[0].id], ANA)
    await admin_service.release_slot(slots[0].id)

    states = _states(await catalog.list_available_slots())
    assert states[slots[0].id] is SlotState.AVAILABLE
