from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

RISK_LEVELS = ("ALTO", "MÉDIO", "BAIXO")
PAID_FIELDS = ("publico_alvo", "angulo_emocional", "briefing_imagem", "chamadas_acao", "copy_persuasiva")


def normalize_risk_level(value: str) -> str:
    text = str(value or "").strip().upper()
    if text == "MEDIO":
        text = "MÉDIO"
    if text not in RISK_LEVELS:
        raise ValueError(f"risco must be one of {', '.join(RISK_LEVELS)}")
    return text


class ReducedDiagnosisPayload(BaseModel):
    """Fields the provider returns for anonymous and no-credit callers."""

    risco: str
    porque: str = Field(min_length=1)
    impacto: str = Field(min_length=1)
    copy_line: str = Field(alias="copy", min_length=1)

    @field_validator("risco")
    @classmethod
    def _risk_level(cls, value: str) -> str:
        return normalize_risk_level(value)


class FullDiagnosisPayload(ReducedDiagnosisPayload):
    """Fields the provider returns for paying callers."""

    publico_alvo: str = Field(min_length=1)
    angulo_emocional: str = Field(min_length=1)
    briefing_imagem: str = Field(min_length=1)
    chamadas_acao: List[str] = Field(min_length=1)
    copy_persuasiva: str = Field(min_length=1)


class DiagnosisResult(BaseModel):
    risco: str
    causa: str
    consequencia: str
    copy_base: Optional[str] = None
    publico_alvo: Optional[str] = None
    angulo_emocional: Optional[str] = None
    briefing_imagem: Optional[str] = None
    chamadas_acao: Optional[List[str]] = None
    copy_persuasiva: Optional[str] = None

    @property
    def has_paid_fields(self) -> bool:
        return any(getattr(self, name) is not None for name in PAID_FIELDS)

    def reduced(self) -> "DiagnosisResult":
        """Copy with every paid field cleared."""
        return self.model_copy(update={name: None for name in PAID_FIELDS})
