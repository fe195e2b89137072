"""
Tests for the Mercado Pago client against a mocked HTTP transport.
"""

import json
from decimal import Decimal

import httpx
import pytest
import respx

from enrollment.core.config import Settings
from enrollment.core.exceptions import UpstreamProcessorError
from enrollment.infrastructure.mercadopago_client import MercadoPagoClient
from enrollment.services.interfaces.payment_processor import PaymentItem, ReturnUrls

API = "https://api.mercadopago.test"


def _settings(**overrides) -> Settings:
    values = {
        "MP_ACCESS_TOKEN": "TEST-token",
        "MP_API_BASE": API,
        "MP_NOTIFICATION_URL": "https://school.test/payment-webhook",
    }
    values.update(overrides)
    return Settings(**values)


def _intent_args():
    return {
        "items": [PaymentItem(title="Clase", unit_price=Decimal("15000.50"), currency="ARS")],
        "metadata": {"group_correlation_id": "g1", "reservation_ids": [1]},
        "return_urls": ReturnUrls(success="https://school.test/ok", failure="https://school.test/ko"),
        "external_reference": "g1",
    }


@pytest.mark.asyncio
@respx.mock
async def test_create_payment_intent():
    route = respx.post(f"{API}/checkout/preferences").respond(
        201, json={"id": "pref-9", "init_point": "https://mp.test/pay/9", "sandbox_init_point": "https://sb/9"}
    )
    client = MercadoPagoClient(_settings())

    intent = await client.create_payment_intent(**_intent_args())

    assert intent.id == "pref-9"
    assert intent.checkout_url == "https://mp.test/pay/9"

    request = route.calls[0].request
    assert request.headers["Authorization"] == "Bearer TEST-token"
    sent = json.loads(request.content)
    assert sent["items"][0]["unit_price"] == 15000.5
    assert sent["items"][0]["currency_id"] == "ARS"
    assert sent["back_urls"] == {"success": "https://school.test/ok", "failure": "https://school.test/ko"}
    assert sent["auto_return"] == "approved"
    assert sent["metadata"] == {"group_correlation_id": "g1", "reservation_ids": [1]}
    assert sent["external_reference"] == "g1"
    assert sent["notification_url"] == "https://school.test/payment-webhook"
    await client.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_create_payment_intent_sandbox_url():
    respx.post(f"{API}/checkout/preferences").respond(
        201, json={"id": "pref-9", "init_point": "https://mp.test/pay/9", "sandbox_init_point": "https://sb/9"}
    )
    client = MercadoPagoClient(_settings(MP_SANDBOX=True))

    intent = await client.create_payment_intent(**_intent_args())

    assert intent.checkout_url == "https://sb/9"
    await client.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_create_payment_intent_error_status():
    respx.post(f"{API}/checkout/preferences").respond(400, json={"message": "invalid items"})
    client = MercadoPagoClient(_settings())

    with pytest.raises(UpstreamProcessorError):
        await client.create_payment_intent(**_intent_args())
    await client.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_create_payment_intent_transport_error():
    respx.post(f"{API}/checkout/preferences").mock(side_effect=httpx.ConnectError("refused"))
    client = MercadoPagoClient(_settings())

    with pytest.raises(UpstreamProcessorError):
        await client.create_payment_intent(**_intent_args())
    await client.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_create_payment_intent_missing_url():
    respx.post(f"{API}/checkout/preferences").respond(201, json={"id": "pref-9"})
    client = MercadoPagoClient(_settings())

    with pytest.raises(UpstreamProcessorError):
        await client.create_payment_intent(**_intent_args())
    await client.aclose()


@pytest.mark.asyncio
async def test_missing_access_token():
    client = MercadoPagoClient(_settings(MP_ACCESS_TOKEN=""))

    with pytest.raises(UpstreamProcessorError):
        await client.get_payment_by_id("1")
    await client.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_get_payment_by_id():
    respx.get(f"{API}/v1/payments/123").respond(
        200,
        json={
            "id": 123,
            "status": "approved",
            "transaction_amount": 15000.5,
            "metadata": {"reservation_ids": [1, 2], "mode": "individual"},
            "external_reference": "g1",
        },
    )
    client = MercadoPagoClient(_settings())

    details = await client.get_payment_by_id("123")

    assert details.id == "123"
    assert details.status == "approved"
    assert details.amount == Decimal("15000.5")
    assert details.metadata == {"reservation_ids": [1, 2], "mode": "individual", "group_correlation_id": "g1"}
    await client.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_get_payment_not_found():
    respx.get(f"{API}/v1/payments/404").respond(404, json={"message": "not found"})
    client = MercadoPagoClient(_settings())

    with pytest.raises(UpstreamProcessorError):
        await client.get_payment_by_id("404")
    await client.aclose()


@pytest.mark.asyncio
@respx.mock
async def test_get_payment_invalid_json():
    respx.get(f"{API}/v1/payments/1").respond(200, content=b"<html>")
    client = MercadoPagoClient(_settings())

    with pytest.raises(UpstreamProcessorError):
        await client.get_payment_by_id("1")
    await client.aclose()
