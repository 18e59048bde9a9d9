import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from config import settings
from services.entitlement import Tier
from services.errors import ProviderError
from .models import DiagnosisResult, FullDiagnosisPayload, ReducedDiagnosisPayload
from .prompts import SYSTEM_PROMPT, build_diagnosis_prompt

logger = logging.getLogger(__name__)


def get_openai_client(api_key: str) -> Optional[AsyncOpenAI]:
    """Get OpenAI client, handling placeholders."""
    if not api_key or "your_" in api_key or api_key == "test-key":
        return None
    return AsyncOpenAI(api_key=api_key)


def parse_diagnosis(raw: Optional[str], tier: Tier) -> DiagnosisResult:
    """
    Validate raw model output against the schema requested for ``tier``.

    Args:
        raw: Text content returned by the model, expected to be a JSON object
        tier: Tier the prompt was built for

    Raises:
        ProviderError: when the payload is not JSON or misses required fields
    """
    try:
        data = json.loads(raw or "")
    except (TypeError, ValueError) as exc:
        raise ProviderError("Diagnosis provider returned invalid JSON") from exc
    if not isinstance(data, dict):
        raise ProviderError("Diagnosis provider returned a non-object payload")

    try:
        if tier.is_full:
            full = FullDiagnosisPayload(**data)
            return DiagnosisResult(
                risco=full.risco,
                causa=full.porque,
                consequencia=full.impacto,
                copy_base=full.copy_line,
                publico_alvo=full.publico_alvo,
                angulo_emocional=full.angulo_emocional,
                briefing_imagem=full.briefing_imagem,
                chamadas_acao=full.chamadas_acao,
                copy_persuasiva=full.copy_persuasiva,
            )
        reduced = ReducedDiagnosisPayload(**data)
    except ValidationError as exc:
        raise ProviderError(f"Diagnosis provider payload failed validation: {exc.error_count()} error(s)") from exc

    return DiagnosisResult(
        risco=reduced.risco,
        causa=reduced.porque,
        consequencia=reduced.impacto,
        copy_base=reduced.copy_line,
    )


class DiagnosisProvider(ABC):
    @abstractmethod
    async def diagnose(self, produto: str, tier: Tier) -> DiagnosisResult:
        raise NotImplementedError


class OpenAIDiagnosisProvider(DiagnosisProvider):
    """Chat-completions backed diagnosis with JSON-object output."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model or settings.OPENAI_MODEL
        self._client = client or get_openai_client(settings.OPENAI_API_KEY if api_key is None else api_key)

    async def diagnose(self, produto: str, tier: Tier) -> DiagnosisResult:
        if self._client is None:
            raise ProviderError("OpenAI API key is not configured")

        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_diagnosis_prompt(produto, tier)},
                ],
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            logger.error(f"Error in diagnosis LLM call: {exc}")
            raise ProviderError("Diagnosis provider request failed") from exc

        if not response.choices:
            raise ProviderError("Diagnosis provider returned no choices")
        return parse_diagnosis(response.choices[0].message.content, tier)
