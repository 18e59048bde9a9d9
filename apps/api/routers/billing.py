"""Checkout and payment confirmation router."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from config import settings
from routers.auth_scope import AuthContext, get_auth_context
from routers.providers import get_payment_gateway, get_purchase_reconciler
from routers.rate_limit import rate_limit
from services.errors import InvalidRequest, ProviderError
from services.payments import GatewayNotConfiguredError, PaymentGateway, verify_webhook_signature
from services.purchases import PurchaseReconciler

router = APIRouter()
logger = logging.getLogger(__name__)


class CheckoutRequest(BaseModel):
    sku: Optional[str] = None


@router.post("/checkout")
@router.post("/pagamento", include_in_schema=False)
async def create_checkout(
    request: Optional[CheckoutRequest] = Body(default=None),
    _rate_limit: None = Depends(rate_limit("billing_checkout", limit=20, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    sku = (request.sku if request and request.sku else settings.DEFAULT_PACK_SKU).strip()
    try:
        checkout_url = await gateway.create_checkout(auth.user_id, sku)
    except InvalidRequest as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except GatewayNotConfiguredError as exc:
        raise HTTPException(status_code=503, detail="Pagamento não configurado") from exc
    except ProviderError as exc:
        logger.error("Checkout failed for %s: %s", auth.user_id, exc.message)
        raise HTTPException(status_code=500, detail="Erro no pagamento") from exc
    return {"checkout_url": checkout_url}


def _notification_fields(body: Dict[str, Any], params: Dict[str, str]) -> Dict[str, str]:
    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    topic = body.get("type") or body.get("topic") or params.get("type") or params.get("topic") or ""
    payment_id = data.get("id") or params.get("data.id") or params.get("id") or ""
    return {"topic": str(topic).strip().lower(), "payment_id": str(payment_id).strip()}


@router.post("/payments/webhook")
async def payment_webhook(
    request: Request,
    gateway: PaymentGateway = Depends(get_payment_gateway),
    reconciler: PurchaseReconciler = Depends(get_purchase_reconciler),
):
    """Mercado Pago notification intake.

    Only the payment id is trusted from the notification; amount, user and sku
    are read back from the provider. Non-2xx answers make the provider retry.
    """
    try:
        body = await request.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    params = dict(request.query_params)
    fields = _notification_fields(body, params)

    if not verify_webhook_signature(
        signature_header=request.headers.get("x-signature"),
        request_id=request.headers.get("x-request-id"),
        data_id=params.get("data.id") or fields["payment_id"],
    ):
        logger.warning("Rejected payment notification with invalid signature")
        raise HTTPException(status_code=401, detail="Invalid signature")

    if fields["topic"] != "payment" or not fields["payment_id"]:
        return {"received": True, "applied": False}

    try:
        confirmation = await gateway.fetch_confirmation(fields["payment_id"])
    except GatewayNotConfiguredError as exc:
        raise HTTPException(status_code=503, detail="Pagamento não configurado") from exc
    except ProviderError as exc:
        raise HTTPException(status_code=502, detail=exc.message) from exc

    if confirmation is None:
        return {"received": True, "applied": False}

    try:
        result = await reconciler.apply(confirmation)
    except InvalidRequest as exc:
        logger.warning("Ignoring payment %s: %s", fields["payment_id"], exc.message)
        return {"received": True, "applied": False}
    except SQLAlchemyError as exc:
        logger.error("Payment %s could not be applied: %s", fields["payment_id"], exc)
        raise HTTPException(status_code=503, detail="Ledger unavailable") from exc

    return {
        "received": True,
        "applied": result.applied,
        "payment_reference": result.payment_reference,
        "credits_granted": result.credits_granted if result.applied else 0,
    }
