"""Public, non-sensitive client configuration."""

from fastapi import APIRouter

from config import firebase_web_config, pack_credits, settings

router = APIRouter()


@router.get("/config")
async def public_config():
    return {
        "app_name": settings.APP_NAME,
        "checkout_enabled": bool(settings.MP_ACCESS_TOKEN),
        "firebase": firebase_web_config(),
        "pack": {
            "sku": settings.DEFAULT_PACK_SKU,
            "title": settings.PACK_TITLE,
            "credits": pack_credits(settings.DEFAULT_PACK_SKU),
            "unit_price": settings.PACK_UNIT_PRICE,
            "currency": settings.PACK_CURRENCY,
        },
    }
