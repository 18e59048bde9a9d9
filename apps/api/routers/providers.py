"""Dependency providers for external collaborators and ledger services.

Tests replace these through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from database import get_session_maker
from llm.client import DiagnosisProvider, OpenAIDiagnosisProvider
from services.balance_store import BalanceStore
from services.diagnosis import DiagnosisOrchestrator
from services.identity import FirebaseTokenVerifier, TokenVerifier
from services.payments import MercadoPagoGateway, PaymentGateway
from services.purchases import PurchaseReconciler


@lru_cache(maxsize=1)
def get_token_verifier() -> TokenVerifier:
    return FirebaseTokenVerifier()


@lru_cache(maxsize=1)
def get_diagnosis_provider() -> DiagnosisProvider:
    return OpenAIDiagnosisProvider()


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    return MercadoPagoGateway()


def get_balance_store(
    session_maker: async_sessionmaker = Depends(get_session_maker),
) -> BalanceStore:
    return BalanceStore(session_maker)


def get_purchase_reconciler(
    session_maker: async_sessionmaker = Depends(get_session_maker),
    store: BalanceStore = Depends(get_balance_store),
) -> PurchaseReconciler:
    return PurchaseReconciler(session_maker, store=store)


def get_diagnosis_orchestrator(
    verifier: TokenVerifier = Depends(get_token_verifier),
    provider: DiagnosisProvider = Depends(get_diagnosis_provider),
    store: BalanceStore = Depends(get_balance_store),
) -> DiagnosisOrchestrator:
    return DiagnosisOrchestrator(verifier=verifier, provider=provider, store=store)
