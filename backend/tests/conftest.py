"""
Pytest fixtures for test database, client, fakes and seed data.

Each test gets its own SQLite file. Transactions open with
BEGIN IMMEDIATE so concurrent writers serialize the way they do behind
the timeslot row lock on PostgreSQL.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("MP_ACCESS_TOKEN", "TEST-token")
os.environ.setdefault("MP_VERIFY_WEBHOOKS", "false")

from datetime import datetime, time, timedelta, timezone
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from enrollment.main import app
from enrollment.api import deps
from enrollment.core.exceptions import UpstreamProcessorError
from enrollment.db.base import Base
from enrollment.models import Teacher, Timeslot
from enrollment.services.admin_service import AdminService
from enrollment.services.expiry_sweeper import ExpirySweeper
from enrollment.services.hold_manager import HoldManager
from enrollment.services.interfaces.notifier import Notifier, ReservationConfirmed
from enrollment.services.interfaces.payment_processor import (
    PaymentProcessor,
    PaymentDetails,
    PaymentIntent,
)
from enrollment.services.reconciliation_service import ReconciliationEngine
from enrollment.services.slot_catalog import SlotCatalog
from enrollment.services.tuition_service import TuitionService

ADMIN_KEY = "test-admin-key"
START = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeProcessor(PaymentProcessor):
    """In-memory processor: records intents, serves registered payments."""

    def __init__(self):
        self.intents: list[dict] = []
        self.payments: dict[str, PaymentDetails] = {}
        self.lookups: list[str] = []
        self.fail_create = False

    async def create_payment_intent(self, items, metadata, return_urls, external_reference=None):
        if self.fail_create:
            raise UpstreamProcessorError("Payment processor returned 500")
        self.intents.append({
            "items": items,
            "metadata": metadata,
            "return_urls": return_urls,
            "external_reference": external_reference,
        })
        preference_id = f"pref-{len(self.intents)}"
        return PaymentIntent(id=preference_id, checkout_url=f"https://checkout.test/{preference_id}")

    async def get_payment_by_id(self, payment_id):
        self.lookups.append(payment_id)
        if payment_id not in self.payments:
            raise UpstreamProcessorError("Payment processor returned 404")
        return self.payments[payment_id]


class RecordingNotifier(Notifier):
    def __init__(self):
        self.events: list[ReservationConfirmed] = []
        self.fail = False

    async def publish(self, event: ReservationConfirmed) -> None:
        if self.fail:
            raise RuntimeError("mail relay down")
        self.events.append(event)


class FakePaymentMarkers:
    def __init__(self):
        self.marked: set[str] = set()

    async def seen(self, payment_id: str) -> bool:
        return payment_id in self.marked

    async def mark(self, payment_id: str) -> None:
        self.marked.add(payment_id)


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Fresh SQLite database per test; tables created from the models."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'enrollment.db'}", poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def processor() -> FakeProcessor:
    return FakeProcessor()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def markers() -> FakePaymentMarkers:
    return FakePaymentMarkers()


@pytest.fixture
def hold_manager(session_factory, clock) -> HoldManager:
    return HoldManager(session_factory, clock, timedelta(minutes=10))


@pytest.fixture
def tuition(session_factory, clock) -> TuitionService:
    return TuitionService(session_factory, clock)


@pytest.fixture
def reconciliation(session_factory, processor, notifier, tuition, markers, clock) -> ReconciliationEngine:
    return ReconciliationEngine(
        session_factory,
        processor,
        notifier,
        tuition=tuition,
        payment_markers=markers,
        clock=clock,
    )


@pytest.fixture
def sweeper(session_factory, clock) -> ExpirySweeper:
    return ExpirySweeper(session_factory, clock, interval_seconds=60)


@pytest.fixture
def catalog(session_factory, clock) -> SlotCatalog:
    return SlotCatalog(session_factory, clock)


@pytest.fixture
def admin_service(session_factory, reconciliation, clock) -> AdminService:
    return AdminService(session_factory, reconciliation, clock)


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, clock, processor, notifier, markers) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with the collaborators swapped for the test doubles."""
    app.dependency_overrides[deps.get_session_factory] = lambda: session_factory
    app.dependency_overrides[deps.get_clock] = lambda: clock
    app.dependency_overrides[deps.get_payment_processor] = lambda: processor
    app.dependency_overrides[deps.get_notifier] = lambda: notifier
    app.dependency_overrides[deps.get_payment_markers] = lambda: markers

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict:
    return {"X-Admin-Key": ADMIN_KEY}


async def _create_teacher(session_factory, name: str) -> Teacher:
    async with session_factory() as db:
        async with db.begin():
            teacher = Teacher(name=name)
            db.add(teacher)
        await db.refresh(teacher)
        return teacher


async def _create_slot(session_factory, teacher_id: int, weekday: int, start: time) -> Timeslot:
    async with session_factory() as db:
        async with db.begin():
            slot = Timeslot(teacher_id=teacher_id, weekday=weekday, start_time=start)
            db.add(slot)
        await db.refresh(slot)
        return slot


@pytest_asyncio.fixture
async def teacher(session_factory) -> Teacher:
    return await _create_teacher(session_factory, "Paula")


@pytest_asyncio.fixture
async def slots(session_factory, teacher) -> list[Timeslot]:
    """Three weekly slots: Monday 18:00, Monday 19:00, Wednesday 10:00."""
    return [
        await _create_slot(session_factory, teacher.id, 0, time(18, 0)),
        await _create_slot(session_factory, teacher.id, 0, time(19, 0)),
        await _create_slot(session_factory, teacher.id, 2, time(10, 0)),
    ]


def approved_webhook(payment_id: str, group_id: Optional[str] = None, reservation_ids=None, mode="individual",
                     **metadata) -> dict:
    """Webhook body carrying status and metadata inline."""
    return {
        "type": "payment",
        "data": {"id": payment_id},
        "status": "approved",
        "metadata": {
            "group_correlation_id": group_id,
            "reservation_ids": reservation_ids or [],
            "mode": mode,
            **metadata,
        },
    }
