"""
Tests for the expiry sweeper.
"""

import asyncio

import pytest
from sqlalchemy import select

from enrollment.models.enums import ReservationState
from enrollment.models.reservation import Reservation
from enrollment.schemas.hold import StudentInfo
from enrollment.schemas.slot import SlotStateChange
from enrollment.services.expiry_sweeper import ExpirySweeper

ANA = StudentInfo(name="Ana", email="ana@x.com")
BEA = StudentInfo(name="Bea", email="bea@x.com")


@pytest.mark.asyncio
async def test_abandoned_hold_recovery(hold_manager, sweeper, clock, slots, session_factory):
    """Hold for 10 minutes, 11 minutes pass, sweeper runs, the slot can be held again."""
    abandoned = await hold_manager.create_hold([slots[1].id], ANA)

    clock.advance(minutes=11)
    expired = await sweeper.sweep()
    assert expired == abandoned.reservation_ids

    async with session_factory() as db:
        row = await db.get(Reservation, abandoned.reservation_ids[0])
    assert row.state == ReservationState.CANCELLED.value

    retry = await hold_manager.create_hold([slots[1].id], BEA)
    assert len(retry.reservation_ids) == 1
    assert retry.reservation_ids != abandoned.reservation_ids


@pytest.mark.asyncio
async def test_sweep_leaves_live_holds(hold_manager, sweeper, clock, slots):
    await hold_manager.create_hold([slots[0].id], ANA)
    clock.advance(minutes=5)
    live = await hold_manager.create_hold([slots[1].id], BEA)

    clock.advance(minutes=6)
    expired = await sweeper.sweep()

    assert live.reservation_ids[0] not in expired
    assert len(expired) == 1


@pytest.mark.asyncio
async def test_sweep_is_idempotent(hold_manager, sweeper, clock, slots):
    await hold_manager.create_hold([slots[0].id], ANA)
    clock.advance(minutes=11)

    assert len(await sweeper.sweep()) == 1
    assert await sweeper.sweep() == []


@pytest.mark.asyncio
async def test_sweep_ignores_blocked_rows(admin_service, sweeper, clock, slots, session_factory):
    await admin_service.set_slot_state(slots[0].id, SlotStateChange(state="blocked"))
    clock.advance(days=30)

    assert await sweeper.sweep() == []
    async with session_factory() as db:
        states = (await db.execute(select(Reservation.state))).scalars().all()
    assert states == [ReservationState.BLOCKED.value]


@pytest.mark.asyncio
async def test_run_forever_survives_failed_tick(clock):
    """A failing tick is logged and the loop keeps going until cancelled."""
    calls = []

    class FlakySweeper(ExpirySweeper):
        async def sweep(self):
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("database restarting")
            return []

    loop_task = asyncio.create_task(FlakySweeper(None, clock, interval_seconds=0).run_forever())
    while len(calls) < 3:
        await asyncio.sleep(0)
    loop_task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await loop_task

    assert len(calls) >= 3
