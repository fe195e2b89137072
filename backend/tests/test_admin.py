"""
Tests for admin endpoints: authentication, teachers, slots, slot state and
manual reconciliation.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from conftest import approved_webhook
from enrollment.core.security import verify_admin_key
from enrollment.models.enums import ReservationState
from enrollment.models.reservation import Reservation
from enrollment.models.timeslot import Timeslot
from enrollment.schemas.hold import StudentInfo

ANA = StudentInfo(name="Ana", email="ana@x.com")
BEA = StudentInfo(name="Bea", email="bea@x.com")


async def _paid(hold_manager, reconciliation, slot_id, payment_id="p1"):
    hold = await hold_manager.create_hold([slot_id], ANA)
    await reconciliation.on_payment_notification(approved_webhook(payment_id, group_id=hold.group_correlation_id))
    return hold.reservation_ids[0]


async def _states(session_factory) -> dict[int, str]:
    async with session_factory() as db:
        return dict((await db.execute(select(Reservation.id, Reservation.state))).all())


def test_verify_admin_key():
    assert verify_admin_key("secret", "secret")
    assert not verify_admin_key("wrong", "secret")
    assert not verify_admin_key(None, "secret")
    assert not verify_admin_key("", "")


@pytest.mark.asyncio
async def test_admin_requires_key(client: AsyncClient):
    assert (await client.get("/admin/teachers")).status_code == 401
    response = await client.get("/admin/teachers", headers={"X-Admin-Key": "wrong"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_and_list_teachers(client: AsyncClient, admin_headers):
    response = await client.post("/admin/teachers", json={"name": "Lucía"}, headers=admin_headers)
    assert response.status_code == 201
    assert response.json()["name"] == "Lucía"

    duplicate = await client.post("/admin/teachers", json={"name": "Lucía"}, headers=admin_headers)
    assert duplicate.status_code == 409

    listing = await client.get("/admin/teachers", headers=admin_headers)
    assert [t["name"] for t in listing.json()] == ["Lucía"]


@pytest.mark.asyncio
async def test_create_update_delete_slot(client: AsyncClient, admin_headers, teacher):
    created = await client.post(
        "/admin/slots",
        json={"teacher_id": teacher.id, "weekday": 4, "time": "17:30"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    slot = created.json()
    assert slot["weekday"] == 4
    assert slot["time"] == "17:30:00"

    clash = await client.post(
        "/admin/slots",
        json={"teacher_id": teacher.id, "weekday": 4, "time": "17:30"},
        headers=admin_headers,
    )
    assert clash.status_code == 409

    updated = await client.put(f"/admin/slots/{slot['id']}", json={"weekday": 5}, headers=admin_headers)
    assert updated.status_code == 200
    assert updated.json()["weekday"] == 5
    assert updated.json()["time"] == "17:30:00"

    deleted = await client.delete(f"/admin/slots/{slot['id']}", headers=admin_headers)
    assert deleted.status_code == 204
    assert (await client.get("/admin/slots", headers=admin_headers)).json() == []


@pytest.mark.asyncio
async def test_create_slot_validation(client: AsyncClient, admin_headers, teacher):
    bad_weekday = await client.post(
        "/admin/slots",
        json={"teacher_id": teacher.id, "weekday": 7, "time": "10:00"},
        headers=admin_headers,
    )
    assert bad_weekday.status_code == 422

    unknown_teacher = await client.post(
        "/admin/slots",
        json={"teacher_id": 9999, "weekday": 1, "time": "10:00"},
        headers=admin_headers,
    )
    assert unknown_teacher.status_code == 404


@pytest.mark.asyncio
async def test_delete_slot_refused_while_paid(client: AsyncClient, admin_headers, hold_manager, reconciliation,
                                              slots):
    await _paid(hold_manager, reconciliation, slots[0].id)

    response = await client.delete(f"/admin/slots/{slots[0].id}", headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_delete_slot_removes_unpaid_rows(client: AsyncClient, admin_headers, hold_manager, slots,
                                               session_factory):
    await hold_manager.create_hold([slots[0].id], ANA)

    response = await client.delete(f"/admin/slots/{slots[0].id}", headers=admin_headers)
    assert response.status_code == 204
    assert await _states(session_factory) == {}


@pytest.mark.asyncio
async def test_delete_teacher(client: AsyncClient, admin_headers, hold_manager, reconciliation, teacher, slots,
                              session_factory):
    reservation_id = await _paid(hold_manager, reconciliation, slots[0].id)

    refused = await client.delete(f"/admin/teachers/{teacher.id}", headers=admin_headers)
    assert refused.status_code == 409

    await client.post(f"/admin/slots/{slots[0].id}/release", headers=admin_headers)
    deleted = await client.delete(f"/admin/teachers/{teacher.id}", headers=admin_headers)
    assert deleted.status_code == 204

    async with session_factory() as db:
        assert (await db.execute(select(Timeslot))).scalars().all() == []
        assert await db.get(Reservation, reservation_id) is None


@pytest.mark.asyncio
async def test_delete_unknown_teacher(client: AsyncClient, admin_headers):
    response = await client.delete("/admin/teachers/9999", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_release_cancels_paid_reservation(client: AsyncClient, admin_headers, hold_manager, reconciliation,
                                                slots, session_factory):
    """Release is the only way out of confirmed; the slot becomes holdable again."""
    reservation_id = await _paid(hold_manager, reconciliation, slots[0].id)

    response = await client.post(f"/admin/slots/{slots[0].id}/release", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["cancelled_reservation_ids"] == [reservation_id]
    assert (await _states(session_factory))[reservation_id] == ReservationState.CANCELLED.value

    retry = await hold_manager.create_hold([slots[0].id], BEA)
    assert len(retry.reservation_ids) == 1


@pytest.mark.asyncio
async def test_set_state_blocked_replaces_hold(client: AsyncClient, admin_headers, hold_manager, slots,
                                               session_factory):
    hold = await hold_manager.create_hold([slots[0].id], ANA)

    response = await client.post(
        f"/admin/slots/{slots[0].id}/state",
        json={"state": "blocked"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    rows = response.json()
    assert len(rows) == 1
    assert rows[0]["state"] == "blocked"
    assert rows[0]["hold_expires_at"] is None
    assert (await _states(session_factory))[hold.reservation_ids[0]] == ReservationState.CANCELLED.value

    slots_view = await client.get("/slots")
    assert slots_view.json()[0]["state"] == "blocked"


@pytest.mark.asyncio
async def test_set_state_pending_with_expiry(client: AsyncClient, admin_headers, slots, clock, sweeper):
    response = await client.post(
        f"/admin/slots/{slots[1].id}/state",
        json={"state": "pending", "student_name": "Ana", "student_email": "ana@x.com", "hold_minutes": 60},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()[0]["state"] == "pending"

    clock.advance(minutes=30)
    assert await sweeper.sweep() == []
    clock.advance(minutes=31)
    assert len(await sweeper.sweep()) == 1


@pytest.mark.asyncio
async def test_set_state_refused_while_paid(client: AsyncClient, admin_headers, hold_manager, reconciliation,
                                            slots):
    await _paid(hold_manager, reconciliation, slots[0].id)

    response = await client.post(
        f"/admin/slots/{slots[0].id}/state",
        json={"state": "blocked"},
        headers=admin_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_set_state_available_releases(client: AsyncClient, admin_headers, slots):
    await client.post(f"/admin/slots/{slots[0].id}/state", json={"state": "blocked"}, headers=admin_headers)

    response = await client.post(
        f"/admin/slots/{slots[0].id}/state",
        json={"state": "available"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json() == []
    assert (await client.get("/slots")).json()[0]["state"] == "available"


@pytest.mark.asyncio
async def test_set_state_unknown_slot(client: AsyncClient, admin_headers):
    response = await client.post("/admin/slots/9999/state", json={"state": "blocked"}, headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_reservations_filters(client: AsyncClient, admin_headers, hold_manager, reconciliation, slots):
    paid_id = await _paid(hold_manager, reconciliation, slots[0].id)
    await hold_manager.create_hold([slots[1].id], BEA)

    everything = await client.get("/admin/reservations", headers=admin_headers)
    assert len(everything.json()) == 2

    confirmed = await client.get("/admin/reservations?state=confirmed", headers=admin_headers)
    assert [r["id"] for r in confirmed.json()] == [paid_id]

    by_slot = await client.get(f"/admin/reservations?slot_id={slots[1].id}", headers=admin_headers)
    assert [r["student_email"] for r in by_slot.json()] == ["bea@x.com"]

    bad_state = await client.get("/admin/reservations?state=paid", headers=admin_headers)
    assert bad_state.status_code == 422


@pytest.mark.asyncio
async def test_manual_confirm(client: AsyncClient, admin_headers, hold_manager, notifier, slots):
    hold = await hold_manager.create_hold([slots[0].id], ANA)
    reservation_id = hold.reservation_ids[0]

    response = await client.post(
        f"/admin/reservations/{reservation_id}/confirm?payment_id=cash-1",
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["state"] == "confirmed"
    assert response.json()["payment_id"] == "cash-1"
    assert len(notifier.events) == 1

    again = await client.post(f"/admin/reservations/{reservation_id}/confirm", headers=admin_headers)
    assert again.status_code == 200
    assert len(notifier.events) == 1


@pytest.mark.asyncio
async def test_manual_confirm_cancelled_row(client: AsyncClient, admin_headers, hold_manager, sweeper, clock,
                                            slots):
    hold = await hold_manager.create_hold([slots[0].id], ANA)
    clock.advance(minutes=11)
    await sweeper.sweep()

    response = await client.post(f"/admin/reservations/{hold.reservation_ids[0]}/confirm", headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_manual_confirm_displaced_row(client: AsyncClient, admin_headers, hold_manager, clock, slots):
    late = await hold_manager.create_hold([slots[0].id], ANA)
    clock.advance(minutes=11)
    await hold_manager.create_hold([slots[0].id], BEA)

    response = await client.post(f"/admin/reservations/{late.reservation_ids[0]}/confirm", headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_manual_confirm_unknown(client: AsyncClient, admin_headers):
    response = await client.post("/admin/reservations/9999/confirm", headers=admin_headers)
    assert response.status_code == 404
