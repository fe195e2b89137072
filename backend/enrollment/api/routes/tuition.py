"""
Admin endpoints for the monthly tuition ledger.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import EmailStr

from enrollment.api.deps import get_tuition_service
from enrollment.core.security import require_admin
from enrollment.schemas.checkout import MONTH_PATTERN
from enrollment.schemas.tuition import TuitionPaymentSet, TuitionPaymentResponse, TuitionPaymentList
from enrollment.services.tuition_service import TuitionService

router = APIRouter(prefix="/admin", tags=["Tuition"], dependencies=[Depends(require_admin)])


@router.get("/payments/user", response_model=TuitionPaymentList)
async def student_payments_endpoint(
    student_email: EmailStr = Query(...),
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN),
    service: TuitionService = Depends(get_tuition_service),
):
    payments = await service.list_for_student(student_email, month)
    return TuitionPaymentList(payments=[TuitionPaymentResponse.model_validate(p) for p in payments])


@router.get("/payments/summary", response_model=TuitionPaymentList)
async def payments_summary_endpoint(
    month: Optional[str] = Query(None, pattern=MONTH_PATTERN),
    service: TuitionService = Depends(get_tuition_service),
):
    """Every payment row for one month, defaulting to the current month."""
    payments = await service.summary(month)
    return TuitionPaymentList(payments=[TuitionPaymentResponse.model_validate(p) for p in payments])


@router.post("/payment/set", response_model=TuitionPaymentResponse)
async def set_payment_endpoint(
    payment_data: TuitionPaymentSet,
    service: TuitionService = Depends(get_tuition_service),
):
    """Upsert a student's status for a month. An existing amount is kept."""
    payment = await service.set_status(payment_data.student_email, payment_data.status, payment_data.month)
    return TuitionPaymentResponse.model_validate(payment)
