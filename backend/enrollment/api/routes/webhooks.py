"""
Payment processor webhook.

Always answers 200. The processor retries anything else, and a retry can
never fix a notification we failed to reconcile: misses and failures are
logged and counted for manual follow-up instead.
"""

from json import JSONDecodeError

from fastapi import APIRouter, Depends, Request

from enrollment.api.deps import get_reconciliation_engine
from enrollment.core.logging import get_logger
from enrollment.core.metrics import webhook_processing_failures
from enrollment.services.reconciliation_service import ReconciliationEngine

logger = get_logger(__name__)
router = APIRouter(tags=["Payments"])


@router.post("/payment-webhook")
async def payment_webhook_endpoint(
    request: Request,
    engine: ReconciliationEngine = Depends(get_reconciliation_engine),
):
    try:
        body = await request.json()
    except (JSONDecodeError, UnicodeDecodeError):
        body = {}

    try:
        result = await engine.on_payment_notification(body, dict(request.query_params))
        logger.info(
            "webhook_processed",
            outcome=result.outcome.value,
            payment_id=result.payment_id,
            confirmed_ids=result.confirmed_ids,
        )
    except Exception as e:
        webhook_processing_failures.inc()
        logger.exception("webhook_processing_failed", error=str(e))

    return {"received": True}
