"""Mercado Pago checkout creation and payment lookup."""

from __future__ import annotations

from abc import ABC, abstractmethod
import hashlib
import hmac
import logging
from typing import Any, Dict, Optional

import httpx

from config import pack_credits, settings
from services.errors import InvalidRequest, ProviderError
from services.purchases import PaymentConfirmation

logger = logging.getLogger(__name__)

PROVIDER_NAME = "mercadopago"


class GatewayNotConfiguredError(RuntimeError):
    """Raised when the payment gateway has no access token."""


class PaymentGateway(ABC):
    @abstractmethod
    async def create_checkout(self, user_id: str, sku: str) -> str:
        raise NotImplementedError

    @abstractmethod
    async def fetch_confirmation(self, payment_id: str) -> Optional[PaymentConfirmation]:
        raise NotImplementedError


def _split_external_reference(value: Any) -> Dict[str, str]:
    text = str(value or "").strip()
    if ":" not in text:
        return {}
    user_id, _, sku = text.rpartition(":")
    return {"user_id": user_id, "sku": sku}


def confirmation_from_payment(payment: Dict[str, Any]) -> Optional[PaymentConfirmation]:
    """Build a confirmation from a payment resource; ``None`` unless approved."""
    status = str(payment.get("status") or "").lower()
    payment_id = str(payment.get("id") or "").strip()
    if status != "approved" or not payment_id:
        return None

    metadata = payment.get("metadata") or {}
    fallback = _split_external_reference(payment.get("external_reference"))
    user_id = str(metadata.get("uid") or fallback.get("user_id") or "").strip()
    sku = str(metadata.get("sku") or fallback.get("sku") or settings.DEFAULT_PACK_SKU).strip()
    if not user_id:
        logger.warning("Approved payment %s carries no user id", payment_id)
        return None
    return PaymentConfirmation(payment_reference=payment_id, user_id=user_id, sku=sku, provider=PROVIDER_NAME)


class MercadoPagoGateway(PaymentGateway):
    """Thin async client over the Mercado Pago REST API."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self._access_token = (settings.MP_ACCESS_TOKEN if access_token is None else access_token).strip()
        self._base_url = (base_url or settings.MP_API_BASE_URL).rstrip("/")
        self._transport = transport
        self._timeout = float(timeout or settings.MP_TIMEOUT_SECONDS)

    @property
    def configured(self) -> bool:
        return bool(self._access_token)

    def _client(self) -> httpx.AsyncClient:
        if not self.configured:
            raise GatewayNotConfiguredError("MP_ACCESS_TOKEN is not configured")
        return httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._access_token}"},
            timeout=self._timeout,
            transport=self._transport,
        )

    def _preference_body(self, user_id: str, sku: str) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "items": [
                {
                    "id": sku,
                    "title": settings.PACK_TITLE,
                    "quantity": 1,
                    "unit_price": settings.PACK_UNIT_PRICE,
                    "currency_id": settings.PACK_CURRENCY,
                }
            ],
            "metadata": {"uid": user_id, "sku": sku},
            "external_reference": f"{user_id}:{sku}",
        }
        if settings.MP_BACK_URL_SUCCESS:
            body["back_urls"] = {"success": settings.MP_BACK_URL_SUCCESS}
            body["auto_return"] = "approved"
        if settings.MP_NOTIFICATION_URL:
            body["notification_url"] = settings.MP_NOTIFICATION_URL
        return body

    async def create_checkout(self, user_id: str, sku: str) -> str:
        if pack_credits(sku) <= 0:
            raise InvalidRequest(f"Unknown credit pack: {sku}")

        async with self._client() as client:
            try:
                response = await client.post("/checkout/preferences", json=self._preference_body(user_id, sku))
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.error("Mercado Pago preference creation failed: %s", exc)
                raise ProviderError("Payment provider request failed") from exc

        checkout_url = payload.get("init_point") if isinstance(payload, dict) else None
        if not checkout_url:
            raise ProviderError("Payment provider returned no checkout URL")
        return str(checkout_url)

    async def fetch_confirmation(self, payment_id: str) -> Optional[PaymentConfirmation]:
        async with self._client() as client:
            try:
                response = await client.get(f"/v1/payments/{payment_id}")
                response.raise_for_status()
                payment = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.error("Mercado Pago payment lookup failed for %s: %s", payment_id, exc)
                raise ProviderError("Payment provider request failed") from exc

        if not isinstance(payment, dict):
            raise ProviderError("Payment provider returned an invalid payment resource")
        return confirmation_from_payment(payment)


def verify_webhook_signature(
    *,
    signature_header: Optional[str],
    request_id: Optional[str],
    data_id: Optional[str],
    secret: Optional[str] = None,
) -> bool:
    """Check the ``x-signature`` header of a Mercado Pago notification.

    Always true when no webhook secret is configured.
    """
    key = settings.MP_WEBHOOK_SECRET if secret is None else secret
    if not key:
        return True
    if not signature_header:
        return False

    parts: Dict[str, str] = {}
    for chunk in signature_header.split(","):
        name, _, value = chunk.strip().partition("=")
        if name and value:
            parts[name.strip()] = value.strip()
    ts = parts.get("ts")
    received = parts.get("v1")
    if not ts or not received:
        return False

    manifest = ""
    if data_id:
        manifest += f"id:{str(data_id).lower()};"
    if request_id:
        manifest += f"request-id:{request_id};"
    manifest += f"ts:{ts};"
    expected = hmac.new(key.encode(), manifest.encode(), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, received)
