"""Credit balance router."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError

from routers.auth_scope import get_optional_identity
from routers.providers import get_balance_store
from services.balance_store import BalanceStore
from services.identity import IdentityResult

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/credits")
async def get_credits(
    identity: IdentityResult = Depends(get_optional_identity),
    store: BalanceStore = Depends(get_balance_store),
):
    """Current balance; anonymous callers always see zero."""
    if not identity.authenticated:
        return {"credits": 0}
    try:
        credits = await store.get(str(identity.user_id))
    except SQLAlchemyError as exc:
        logger.error("Balance read failed for %s: %s", identity.user_id, exc)
        raise HTTPException(status_code=503, detail="Saldo indisponível no momento") from exc
    return {"credits": credits}
