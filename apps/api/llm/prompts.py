"""Prompt templates for the product diagnosis."""

from services.entitlement import Tier

SYSTEM_PROMPT = "Você age como um estrategista de tráfego pago focado em reduzir desperdício."

_REDUCED_SCHEMA = """{
  "risco": "ALTO | MÉDIO | BAIXO",
  "porque": "Explique claramente por que esse produto corre esse risco ao anunciar.",
  "impacto": "Explique o impacto real disso em dinheiro, cliques errados ou falta de conversão.",
  "copy": "Uma linha de copy simples e direta sobre o produto."
}"""

_FULL_SCHEMA = """{
  "risco": "ALTO | MÉDIO | BAIXO",
  "porque": "Explique claramente por que esse produto corre esse risco ao anunciar.",
  "impacto": "Explique o impacto real disso em dinheiro, cliques errados ou falta de conversão.",
  "copy": "Uma linha de copy simples e direta sobre o produto.",
  "publico_alvo": "Descreva o público que deve ser segmentado no anúncio.",
  "angulo_emocional": "O gatilho emocional principal a explorar.",
  "briefing_imagem": "Briefing curto para a imagem ou criativo do anúncio.",
  "chamadas_acao": ["Duas a quatro chamadas para ação curtas."],
  "copy_persuasiva": "Gere uma copy curta, persuasiva e direta sobre esse produto."
}"""

_RULES = """Regras:
- Seja específico
- Nada genérico
- Linguagem simples e direta"""


def build_diagnosis_prompt(produto: str, tier: Tier) -> str:
    """User prompt for ``produto``; the requested JSON schema depends on the tier."""
    schema = _FULL_SCHEMA if tier.is_full else _REDUCED_SCHEMA
    return (
        f"Produto: {produto}\n\n"
        "Você é um especialista em anúncios pagos para microempreendedores.\n\n"
        "Responda APENAS em JSON válido, no formato:\n\n"
        f"{schema}\n\n"
        f"{_RULES}\n"
    )
