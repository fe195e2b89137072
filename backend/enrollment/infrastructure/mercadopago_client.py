"""
Mercado Pago REST client.
Separated from business logic for clean architecture: services only see
the PaymentProcessor interface.

Endpoints used:
  POST /checkout/preferences   create a checkout preference
  GET  /v1/payments/{id}       fetch a payment with its metadata
"""

import time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from enrollment.core.config import Settings
from enrollment.core.exceptions import UpstreamProcessorError
from enrollment.core.logging import get_logger
from enrollment.core.metrics import record_processor_call, processor_latency
from enrollment.services.interfaces.payment_processor import (
    PaymentProcessor,
    PaymentItem,
    PaymentIntent,
    PaymentDetails,
    ReturnUrls,
)

logger = get_logger(__name__)


class MercadoPagoClient(PaymentProcessor):
    """Async client with connection pooling; one instance per process."""

    def __init__(self, settings: Settings, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.http = http or httpx.AsyncClient(
            base_url=settings.MP_API_BASE,
            timeout=httpx.Timeout(settings.MP_TIMEOUT_SECONDS, connect=5.0),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> dict:
        if not self.settings.MP_ACCESS_TOKEN:
            record_processor_call(operation, ok=False)
            raise UpstreamProcessorError("Payment processor is not configured")

        headers = {"Authorization": f"Bearer {self.settings.MP_ACCESS_TOKEN}"}
        start = time.perf_counter()
        try:
            response = await self.http.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            record_processor_call(operation, ok=False)
            logger.error("processor_request_failed", operation=operation, error=str(e))
            raise UpstreamProcessorError(f"Payment processor unreachable: {e.__class__.__name__}") from e
        finally:
            processor_latency.labels(operation=operation).observe(time.perf_counter() - start)

        if response.status_code >= 400:
            record_processor_call(operation, ok=False)
            logger.error(
                "processor_error_response",
                operation=operation,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise UpstreamProcessorError(f"Payment processor returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            record_processor_call(operation, ok=False)
            raise UpstreamProcessorError("Payment processor returned invalid JSON") from e

        record_processor_call(operation, ok=True)
        return data

    async def create_payment_intent(
        self,
        items: list[PaymentItem],
        metadata: dict[str, Any],
        return_urls: ReturnUrls,
        external_reference: Optional[str] = None,
    ) -> PaymentIntent:
        back_urls = {"success": return_urls.success, "failure": return_urls.failure}
        if return_urls.pending:
            back_urls["pending"] = return_urls.pending

        preference: dict[str, Any] = {
            "items": [
                {
                    "title": item.title,
                    "quantity": item.quantity,
                    "unit_price": float(item.unit_price),
                    "currency_id": item.currency,
                }
                for item in items
            ],
            "back_urls": back_urls,
            "auto_return": "approved",
            "metadata": metadata,
        }
        if external_reference:
            preference["external_reference"] = external_reference
        if self.settings.MP_NOTIFICATION_URL:
            preference["notification_url"] = self.settings.MP_NOTIFICATION_URL

        data = await self._request("create_preference", "POST", "/checkout/preferences", json=preference)

        checkout_url = data.get("sandbox_init_point") if self.settings.MP_SANDBOX else data.get("init_point")
        if not data.get("id") or not checkout_url:
            raise UpstreamProcessorError("Payment processor response missing checkout URL")

        logger.info("preference_created", preference_id=data["id"], external_reference=external_reference)
        return PaymentIntent(id=str(data["id"]), checkout_url=checkout_url)

    async def get_payment_by_id(self, payment_id: str) -> PaymentDetails:
        data = await self._request("get_payment", "GET", f"/v1/payments/{payment_id}")

        amount = None
        if data.get("transaction_amount") is not None:
            try:
                amount = Decimal(str(data["transaction_amount"]))
            except InvalidOperation:
                logger.warning("processor_amount_unparseable", payment_id=payment_id)

        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        if not metadata.get("group_correlation_id") and data.get("external_reference"):
            metadata = {**metadata, "group_correlation_id": data["external_reference"]}

        return PaymentDetails(
            id=str(data.get("id", payment_id)),
            status=data.get("status"),
            metadata=metadata,
            amount=amount,
        )
