"""
FastAPI dependency providers.

Services are built per request from a handful of process-wide
collaborators (session factory, clock, processor, notifier). Tests swap
any of these through `app.dependency_overrides`.
"""

from datetime import timedelta
from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from enrollment.core.clock import Clock, utcnow
from enrollment.core.config import Settings, get_settings
from enrollment.db.session import AsyncSessionLocal
from enrollment.infrastructure.mercadopago_client import MercadoPagoClient
from enrollment.services.admin_service import AdminService
from enrollment.services.cache_service import RedisPaymentMarkers
from enrollment.services.checkout_service import CheckoutService
from enrollment.services.hold_manager import HoldManager
from enrollment.services.interfaces.notifier import Notifier, LoggingNotifier
from enrollment.services.interfaces.payment_processor import PaymentProcessor
from enrollment.services.reconciliation_service import ReconciliationEngine
from enrollment.services.slot_catalog import SlotCatalog
from enrollment.services.tuition_service import TuitionService

_processor: Optional[PaymentProcessor] = None
_notifier: Notifier = LoggingNotifier()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


def get_clock() -> Clock:
    return utcnow


def get_payment_processor() -> PaymentProcessor:
    """One pooled HTTP client per process."""
    global _processor
    if _processor is None:
        _processor = MercadoPagoClient(get_settings())
    return _processor


async def close_payment_processor() -> None:
    global _processor
    if _processor is not None:
        await _processor.aclose()
        _processor = None


def get_notifier() -> Notifier:
    return _notifier


def get_payment_markers() -> Optional[RedisPaymentMarkers]:
    return RedisPaymentMarkers()


def get_slot_catalog(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
) -> SlotCatalog:
    return SlotCatalog(session_factory, clock)


def get_hold_manager(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> HoldManager:
    return HoldManager(session_factory, clock, timedelta(minutes=settings.HOLD_DURATION_MINUTES))


def get_checkout_service(
    hold_manager: HoldManager = Depends(get_hold_manager),
    processor: PaymentProcessor = Depends(get_payment_processor),
    settings: Settings = Depends(get_settings),
) -> CheckoutService:
    return CheckoutService(hold_manager, processor, settings)


def get_tuition_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    clock: Clock = Depends(get_clock),
) -> TuitionService:
    return TuitionService(session_factory, clock)


def get_reconciliation_engine(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    processor: PaymentProcessor = Depends(get_payment_processor),
    notifier: Notifier = Depends(get_notifier),
    tuition: TuitionService = Depends(get_tuition_service),
    markers: Optional[RedisPaymentMarkers] = Depends(get_payment_markers),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> ReconciliationEngine:
    return ReconciliationEngine(
        session_factory,
        processor,
        notifier,
        tuition=tuition,
        payment_markers=markers,
        clock=clock,
        verify_payments=settings.MP_VERIFY_WEBHOOKS and bool(settings.MP_ACCESS_TOKEN),
    )


def get_admin_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> AdminService:
    return AdminService(session_factory, engine, clock, timedelta(minutes=settings.HOLD_DURATION_MINUTES))
