"""Diagnosis orchestration: gate, generate, then charge."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging
from typing import Any, Optional
import uuid

from config import settings
from llm.client import DiagnosisProvider
from llm.models import DiagnosisResult
from services.balance_store import BalanceStore
from services.credits import LedgerTransaction
from services.entitlement import Tier, decide_tier
from services.errors import InvalidRequest, ProviderError
from services.identity import IdentityResult, TokenVerifier

logger = logging.getLogger(__name__)


@dataclass
class DiagnosisOutcome:
    result: DiagnosisResult
    credits_remaining: int
    tier: Tier
    billing_pending: bool = False

    @property
    def full_access(self) -> bool:
        return self.tier.is_full


def validate_product(produto: Any) -> str:
    if not isinstance(produto, str) or not produto.strip():
        raise InvalidRequest("Produto não informado")
    product = produto.strip()
    if len(product) > max(int(settings.PRODUCT_MAX_LENGTH), 1):
        raise InvalidRequest(f"Produto deve ter no máximo {settings.PRODUCT_MAX_LENGTH} caracteres")
    return product


class DiagnosisOrchestrator:
    """Runs one diagnosis request end to end.

    The order is fixed: entitlement is read, the provider is called, and only a
    validated provider result is charged for. A provider failure therefore never
    spends credit, and paid fields are never returned uncharged.
    """

    def __init__(
        self,
        *,
        verifier: TokenVerifier,
        provider: DiagnosisProvider,
        store: BalanceStore,
        timeout_seconds: Optional[float] = None,
    ):
        self._verifier = verifier
        self._provider = provider
        self._store = store
        self._ledger = LedgerTransaction(store)
        self._timeout = float(timeout_seconds or settings.DIAGNOSIS_TIMEOUT_SECONDS)

    async def run(
        self,
        produto: Any,
        token: Optional[str] = None,
        *,
        identity: Optional[IdentityResult] = None,
    ) -> DiagnosisOutcome:
        """Diagnose ``produto``. A pre-resolved ``identity`` skips token verification."""
        product = validate_product(produto)

        if identity is None:
            identity = await self._verifier.verify(token)
        user_id = identity.user_id if identity.authenticated else None
        if token and not user_id:
            logger.info("Diagnosis degraded to anonymous: %s", identity.reason)

        credits = await self._read_balance(user_id) if user_id else 0
        tier = decide_tier(user_id, credits)

        result = await self._generate(product, tier)

        if not tier.is_full:
            return DiagnosisOutcome(result=result.reduced(), credits_remaining=credits, tier=tier)

        spend = await self._ledger.commit_spend(
            user_id,
            balance_before=credits,
            reason="Full diagnosis",
            reference_id=f"diagnosis:{uuid.uuid4()}",
        )
        if spend.lost_race:
            return DiagnosisOutcome(
                result=result.reduced(),
                credits_remaining=spend.balance_after,
                tier=Tier.NO_CREDIT,
            )
        return DiagnosisOutcome(
            result=result,
            credits_remaining=spend.balance_after,
            tier=Tier.FULL,
            billing_pending=spend.warning is not None,
        )

    async def _read_balance(self, user_id: str) -> int:
        try:
            return await self._store.get(user_id)
        except Exception as exc:
            # Without a readable balance the caller cannot be charged, so serve the reduced tier.
            logger.warning("Balance read failed for %s, serving reduced tier: %s", user_id, exc)
            return 0

    async def _generate(self, product: str, tier: Tier) -> DiagnosisResult:
        try:
            return await asyncio.wait_for(self._provider.diagnose(product, tier), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Diagnosis provider timed out after %.1fs", self._timeout)
            raise ProviderError("Diagnosis provider timed out") from exc
        except ProviderError:
            raise
        except Exception as exc:
            logger.exception("Unexpected diagnosis provider failure")
            raise ProviderError("Diagnosis provider failed") from exc
