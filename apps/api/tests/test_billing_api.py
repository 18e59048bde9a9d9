import hashlib
import hmac

import pytest

from conftest import auth_header
from config import settings
from services.balance_store import BalanceStore
from services.purchases import PaymentConfirmation


@pytest.mark.asyncio
async def test_checkout_requires_bearer_token(api_client, payment_gateway):
    response = await api_client.post("/api/checkout")

    assert response.status_code == 401
    assert payment_gateway.checkouts == []


@pytest.mark.asyncio
async def test_checkout_rejects_invalid_token(api_client):
    response = await api_client.post("/api/checkout", headers={"Authorization": "Bearer bogus"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_checkout_returns_provider_url_for_default_pack(api_client, payment_gateway):
    response = await api_client.post("/api/checkout", headers=auth_header("shopper"))

    assert response.status_code == 200
    assert response.json() == {"checkout_url": "https://pay.example/checkout/shopper/pack-10"}
    assert payment_gateway.checkouts == [("shopper", "pack-10")]


@pytest.mark.asyncio
async def test_checkout_unknown_sku_is_bad_request(api_client):
    response = await api_client.post("/api/checkout", json={"sku": "pack-999"}, headers=auth_header("shopper"))

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_legacy_pagamento_route_requires_auth(api_client):
    response = await api_client.post("/api/pagamento")

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_webhook_applies_approved_payment_once(api_client, session_maker, seed_account, payment_gateway):
    await seed_account("shopper", 0)
    payment_gateway.payments["123456"] = PaymentConfirmation(
        payment_reference="123456",
        user_id="shopper",
        sku="pack-10",
    )
    notification = {"type": "payment", "action": "payment.updated", "data": {"id": "123456"}}

    first = await api_client.post("/api/payments/webhook", json=notification)
    replay = await api_client.post("/api/payments/webhook", json=notification)

    assert first.status_code == 200
    assert first.json()["applied"] is True
    assert first.json()["credits_granted"] == 10
    assert replay.status_code == 200
    assert replay.json()["applied"] is False
    assert await BalanceStore(session_maker).get("shopper") == 10


@pytest.mark.asyncio
async def test_webhook_accepts_query_string_notifications(api_client, session_maker, seed_account, payment_gateway):
    await seed_account("shopper", 0)
    payment_gateway.payments["777"] = PaymentConfirmation(payment_reference="777", user_id="shopper", sku="pack-10")

    response = await api_client.post("/api/payments/webhook?topic=payment&id=777")

    assert response.status_code == 200
    assert response.json()["applied"] is True


@pytest.mark.asyncio
async def test_webhook_ignores_unapproved_and_unrelated_notifications(api_client, payment_gateway):
    pending = await api_client.post("/api/payments/webhook", json={"type": "payment", "data": {"id": "unknown"}})
    merchant_order = await api_client.post(
        "/api/payments/webhook",
        json={"type": "merchant_order", "data": {"id": "55"}},
    )

    assert pending.status_code == 200
    assert pending.json() == {"received": True, "applied": False}
    assert merchant_order.status_code == 200
    assert merchant_order.json() == {"received": True, "applied": False}


@pytest.mark.asyncio
async def test_webhook_rejects_bad_signature_when_secret_configured(api_client, monkeypatch, payment_gateway):
    monkeypatch.setattr(settings, "MP_WEBHOOK_SECRET", "whsec-test")
    payment_gateway.payments["9"] = PaymentConfirmation(payment_reference="9", user_id="shopper", sku="pack-10")

    response = await api_client.post(
        "/api/payments/webhook?data.id=9&type=payment",
        json={"type": "payment", "data": {"id": "9"}},
        headers={"x-signature": "ts=1700000000,v1=deadbeef", "x-request-id": "req-1"},
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_webhook_accepts_valid_signature(api_client, monkeypatch, seed_account, payment_gateway):
    monkeypatch.setattr(settings, "MP_WEBHOOK_SECRET", "whsec-test")
    await seed_account("shopper", 0)
    payment_gateway.payments["9"] = PaymentConfirmation(payment_reference="9", user_id="shopper", sku="pack-10")
    manifest = "id:9;request-id:req-1;ts:1700000000;"
    digest = hmac.new(b"whsec-test", manifest.encode(), hashlib.sha256).hexdigest()

    response = await api_client.post(
        "/api/payments/webhook?data.id=9&type=payment",
        json={"type": "payment", "data": {"id": "9"}},
        headers={"x-signature": f"ts=1700000000,v1={digest}", "x-request-id": "req-1"},
    )

    assert response.status_code == 200
    assert response.json()["applied"] is True
