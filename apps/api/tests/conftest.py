import asyncio
from typing import Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from config import pack_credits
from database import Base, get_session_maker
from llm.client import DiagnosisProvider
from llm.models import DiagnosisResult
from main import app
from models.account import Account
from routers import rate_limit
from routers.providers import get_diagnosis_provider, get_payment_gateway, get_token_verifier
from services.entitlement import Tier
from services.errors import InvalidRequest
from services.identity import IdentityResult, TokenVerifier
from services.payments import PaymentGateway
from services.purchases import PaymentConfirmation


TEST_TOKEN_PREFIX = "test-id-token:"


def id_token(user_id: str) -> str:
    return f"{TEST_TOKEN_PREFIX}{user_id}"


def auth_header(user_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {id_token(user_id)}"}


class FakeTokenVerifier(TokenVerifier):
    """Accepts ``test-id-token:<uid>`` and nothing else."""

    def __init__(self):
        self.calls: List[Optional[str]] = []

    async def verify(self, token: Optional[str]) -> IdentityResult:
        self.calls.append(token)
        if not token:
            return IdentityResult.anonymous("Missing Bearer ID token.")
        if not token.startswith(TEST_TOKEN_PREFIX) or not token[len(TEST_TOKEN_PREFIX):]:
            return IdentityResult.anonymous("Invalid or expired ID token.")
        return IdentityResult(user_id=token[len(TEST_TOKEN_PREFIX):])


def sample_result(tier: Tier) -> DiagnosisResult:
    result = DiagnosisResult(
        risco="ALTO",
        causa="Produto genérico com muita concorrência.",
        consequencia="Cliques caros sem conversão.",
        copy_base="Tênis leve para correr todos os dias.",
        publico_alvo="Corredores iniciantes de 25 a 40 anos.",
        angulo_emocional="Superação pessoal.",
        briefing_imagem="Corredor ao amanhecer com o tênis em destaque.",
        chamadas_acao=["Compre agora", "Garanta o seu"],
        copy_persuasiva="Seu primeiro 5 km começa com o tênis certo.",
    )
    return result if tier.is_full else result.reduced()


class FakeDiagnosisProvider(DiagnosisProvider):
    def __init__(self, error: Optional[Exception] = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.calls: List[Tuple[str, Tier]] = []

    async def diagnose(self, produto: str, tier: Tier) -> DiagnosisResult:
        self.calls.append((produto, tier))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return sample_result(tier)


class FakePaymentGateway(PaymentGateway):
    def __init__(self):
        self.checkouts: List[Tuple[str, str]] = []
        self.payments: Dict[str, PaymentConfirmation] = {}

    async def create_checkout(self, user_id: str, sku: str) -> str:
        if pack_credits(sku) <= 0:
            raise InvalidRequest(f"Unknown credit pack: {sku}")
        self.checkouts.append((user_id, sku))
        return f"https://pay.example/checkout/{user_id}/{sku}"

    async def fetch_confirmation(self, payment_id: str) -> Optional[PaymentConfirmation]:
        return self.payments.get(payment_id)


@pytest.fixture(autouse=True)
def reset_local_rate_limit_counters():
    """Keep in-memory rate-limit state isolated between tests."""
    previous = getattr(app.state, "disable_rate_limits", False)
    app.state.disable_rate_limits = True
    rate_limit._local_counters.clear()
    yield
    rate_limit._local_counters.clear()
    app.state.disable_rate_limits = previous


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    db_path = tmp_path / "ledger.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield maker
    await engine.dispose()


@pytest.fixture
def seed_account(session_maker):
    async def _seed(user_id: str, credits: int, free_tier_used: bool = False) -> None:
        async with session_maker() as session:
            session.add(Account(user_id=user_id, credits=credits, free_tier_used=free_tier_used))
            await session.commit()

    return _seed


@pytest.fixture
def diagnosis_provider():
    return FakeDiagnosisProvider()


@pytest.fixture
def payment_gateway():
    return FakePaymentGateway()


@pytest.fixture
def token_verifier():
    return FakeTokenVerifier()


@pytest_asyncio.fixture
async def api_client(session_maker, diagnosis_provider, payment_gateway, token_verifier):
    app.dependency_overrides[get_session_maker] = lambda: session_maker
    app.dependency_overrides[get_diagnosis_provider] = lambda: diagnosis_provider
    app.dependency_overrides[get_payment_gateway] = lambda: payment_gateway
    app.dependency_overrides[get_token_verifier] = lambda: token_verifier
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    for dependency in (get_session_maker, get_diagnosis_provider, get_payment_gateway, get_token_verifier):
        app.dependency_overrides.pop(dependency, None)
