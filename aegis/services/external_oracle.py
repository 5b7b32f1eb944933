"""
external_oracle.py
------------------
Cliente del oráculo de inteligencia externo (Gemini).

Provee:
  - IntelligenceOracle → interfaz de un método que consume el OracleAdapter
  - GeminiOracle       → implementación vía REST (generateContent) con httpx
  - build_prompt()     → convierte un EnrichmentRequest en el prompt

El cliente solo transporta: retorna el texto crudo de la respuesta o
lanza OracleUnavailableException. El parseo y la validación contra el
contrato de RiskAnalysis viven en el OracleAdapter.

Sin GEMINI_API_KEY configurada el cliente falla de inmediato, sin tocar
la red, y el motor opera solo con el FallbackRuleScorer.
"""

import json
import logging
from typing import Optional, Protocol

import httpx

from aegis.core.config import settings
from aegis.core.exceptions import OracleUnavailableException
from aegis.domain.schemas import EnrichmentRequest

logger = logging.getLogger(__name__)


class IntelligenceOracle(Protocol):
    async def enrich(self, request: EnrichmentRequest) -> str:
        """Retorna el texto crudo de la respuesta del oráculo."""
        ...


# ─────────────────────────────────────────────────────────────────────
# Prompt
# ─────────────────────────────────────────────────────────────────────

_RESPONSE_CONTRACT = """{
    "riskScore": number_between_0_and_100,
    "summary": "Detailed one-sentence explanation of the decision including key risk factors",
    "status": "Approved" | "Flagged" | "Denied",
    "confidence": number_between_0_and_100,
    "riskFactors": {
        "LocationAnomaly": number_between_0_and_100,
        "AmountDeviation": number_between_0_and_100,
        "MerchantRisk": number_between_0_and_100,
        "TimePattern": number_between_0_and_100,
        "CardUsage": number_between_0_and_100,
        "UserBehavior": number_between_0_and_100,
        "VelocityCheck": number_between_0_and_100
    },
    "recommendations": [
        "Specific recommendations based on the analysis"
    ],
    "alertLevel": "LOW" | "MEDIUM" | "HIGH" | "CRITICAL"
}"""

_CONSIDERATIONS = (
    "Transaction amount vs user's spending patterns",
    "Location consistency with user's history",
    "Merchant category and reputation",
    "Transaction timing patterns",
    "Card usage frequency and patterns",
    "Velocity of transactions",
    "Known fraud indicators",
    "Regional risk factors",
)


def build_prompt(request: EnrichmentRequest) -> str:
    history = request.history_summary
    profile = request.profile_summary

    transaction_json = json.dumps(
        request.transaction.model_dump(mode="json", by_alias=True, exclude_none=True),
        indent=2,
    )
    pre_analysis_json = json.dumps(
        request.pre_analysis_risk.model_dump(mode="json", by_alias=True),
        indent=2,
    )
    avg_amount = (
        f"{history.average_amount:.2f}" if history.average_amount is not None else "N/A"
    )
    considerations = "\n".join(
        f"{i}. {item}" for i, item in enumerate(_CONSIDERATIONS, start=1)
    )

    return (
        "As AEGIS, an advanced AI fraud detection engine, analyze this transaction "
        "with the provided context.\n\n"
        f"TRANSACTION DATA:\n{transaction_json}\n\n"
        "USER CONTEXT:\n"
        f"- Historical transactions: {history.transaction_count}\n"
        f"- Average transaction amount: {avg_amount}\n"
        f"- Most common locations: {', '.join(history.top_locations) or 'N/A'}\n"
        f"- Most common merchants: {', '.join(history.top_merchants) or 'N/A'}\n"
        f"- User risk level: {profile.risk_level.value}\n"
        f"- Recent suspicious activity: {str(profile.recent_suspicious_activity).lower()}\n\n"
        f"PRE-ANALYSIS RISK FACTORS:\n{pre_analysis_json}\n\n"
        "FRAUD PATTERNS DATABASE:\n"
        f"Current known fraud patterns: {', '.join(request.known_pattern_keys)}\n\n"
        "Your response MUST be a valid JSON object with this exact structure:\n"
        f"{_RESPONSE_CONTRACT}\n\n"
        f"Consider:\n{considerations}\n\n"
        "Provide realistic, contextual analysis based on all available data."
    )


# ─────────────────────────────────────────────────────────────────────
# Gemini
# ─────────────────────────────────────────────────────────────────────

class GeminiOracle:
    """
    Consulta el endpoint generateContent de la API de Gemini.

    Request:
      POST {GEMINI_API_URL}?key={GEMINI_API_KEY}
      {"contents": [{"parts": [{"text": prompt}]}],
       "generationConfig": {"responseMimeType": "application/json"}}

    Response (se toma el texto del primer candidato):
      candidates[0].content.parts[*].text

    Se puede inyectar un httpx.AsyncClient propio (tests, pool compartido).
    Si no, se crea uno por llamada con el timeout configurado.
    """

    def __init__(
        self,
        api_key:  Optional[str] = None,
        model:    Optional[str] = None,
        api_url:  Optional[str] = None,
        timeout:  Optional[float] = None,
        client:   Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.model   = model   or settings.GEMINI_MODEL
        self.api_url = (api_url or settings.GEMINI_API_URL).format(model=self.model)
        self.timeout = timeout if timeout is not None else settings.ORACLE_TIMEOUT_SEC
        self._client = client

    async def enrich(self, request: EnrichmentRequest) -> str:
        if not self.api_key:
            raise OracleUnavailableException("GEMINI_API_KEY no configurada")

        body = {
            "contents": [{"parts": [{"text": build_prompt(request)}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

        logger.info(
            f"[Gemini] Enviando request  model={self.model}  "
            f"user={request.transaction.user_id}"
        )
        try:
            if self._client is not None:
                data = await self._post(self._client, body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    data = await self._post(client, body)
        except httpx.TimeoutException as e:
            raise OracleUnavailableException(f"Timeout consultando Gemini: {e}") from e
        except httpx.HTTPError as e:
            raise OracleUnavailableException(f"Error HTTP consultando Gemini: {e}") from e
        except ValueError as e:
            # response.json() sobre un body que no es JSON
            raise OracleUnavailableException(f"Respuesta de Gemini no es JSON: {e}") from e

        text = self._extract_text(data)
        logger.info("[Gemini] Respuesta recibida")
        return text

    async def _post(self, client: httpx.AsyncClient, body: dict) -> dict:
        response = await client.post(
            self.api_url,
            params  = {"key": self.api_key},
            json    = body,
            timeout = self.timeout,
        )
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _extract_text(data) -> str:
        try:
            parts = data["candidates"][0]["content"]["parts"]
            return "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise OracleUnavailableException(
                f"Respuesta de Gemini sin candidatos: {e}"
            ) from e
