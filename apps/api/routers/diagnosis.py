"""Product diagnosis router."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from llm.models import DiagnosisResult
from routers.auth_scope import get_bearer_token, get_optional_identity
from routers.providers import get_diagnosis_orchestrator
from routers.rate_limit import rate_limit
from services.diagnosis import DiagnosisOrchestrator
from services.errors import InvalidRequest, ProviderError
from services.identity import IdentityResult

router = APIRouter()
logger = logging.getLogger(__name__)


async def _read_product(request: Request) -> Any:
    """Raw ``produto`` from the JSON body; shape checks happen in the orchestrator."""
    try:
        body = await request.json()
    except ValueError:
        return None
    return body.get("produto") if isinstance(body, dict) else None


class DiagnosisResponse(BaseModel):
    resultado: DiagnosisResult
    creditosRestantes: int
    acessoCompleto: bool
    cobrancaPendente: bool = False


@router.post("/diagnosis", response_model=DiagnosisResponse)
@router.post("/anuncio", response_model=DiagnosisResponse, include_in_schema=False)
async def create_diagnosis(
    request: Request,
    _rate_limit: None = Depends(rate_limit("diagnosis", limit=60, window_seconds=3600)),
    token: Optional[str] = Depends(get_bearer_token),
    identity: IdentityResult = Depends(get_optional_identity),
    orchestrator: DiagnosisOrchestrator = Depends(get_diagnosis_orchestrator),
):
    """Diagnose a product. Paid fields are filled only when a credit was spent."""
    try:
        outcome = await orchestrator.run(await _read_product(request), token, identity=identity)
    except InvalidRequest as exc:
        raise HTTPException(status_code=400, detail=exc.message) from exc
    except ProviderError as exc:
        logger.error("Diagnosis failed: %s", exc.message)
        raise HTTPException(status_code=500, detail="Erro ao gerar diagnóstico") from exc

    return DiagnosisResponse(
        resultado=outcome.result,
        creditosRestantes=outcome.credits_remaining,
        acessoCompleto=outcome.full_access,
        cobrancaPendente=outcome.billing_pending,
    )
