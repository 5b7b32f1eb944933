"""
oracle_adapter.py
-----------------
Puente entre el motor y el oráculo de inteligencia externo.

Responsabilidades:
  1. Construir el EnrichmentRequest con el contexto del usuario:
     resumen de historial, perfil, pre-análisis y patrones conocidos
  2. Invocar al oráculo UNA sola vez, con timeout estricto
  3. Limpiar el texto (bloques ```json) y validarlo contra el contrato

Cualquier falla (transporte, timeout, JSON inválido, valores fuera de
rango, status desconocido) retorna None. El orquestador interpreta None
como "usar el FallbackRuleScorer". No hay reintentos: si se necesitan,
son responsabilidad de la capa de transporte.

Una respuesta con riskScore fuera de [0, 100] se descarta completa:
no se clampea ni se repara parcialmente.
"""

import asyncio
import json
import logging
import re
from typing import Iterable, Optional, Sequence

from pydantic import ValidationError

from aegis.core.config import settings
from aegis.core.exceptions import InvalidOracleReplyException, OracleFailure
from aegis.domain.schemas import (
    EnrichmentRequest,
    HistorySummary,
    PreAnalysisRisk,
    ProfileSummary,
    RawVerdict,
    Transaction,
    UserRiskProfile,
)
from aegis.services.external_oracle import IntelligenceOracle
from aegis.services.pre_analysis import (
    average_amount,
    most_common_locations,
    most_common_merchants,
)

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```json|```")


def parse_reply(text: str) -> RawVerdict:
    """
    Convierte el texto del oráculo en un RawVerdict validado.
    Lanza InvalidOracleReplyException si no cumple el contrato.
    """
    cleaned = _CODE_FENCE.sub("", text or "").strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise InvalidOracleReplyException(f"JSON inválido: {e}") from e

    if not isinstance(data, dict):
        raise InvalidOracleReplyException("La respuesta no es un objeto JSON")

    # Solo el scorer de reglas puede marcar un veredicto como fallback
    data.pop("fallback", None)

    try:
        return RawVerdict.model_validate(data)
    except ValidationError as e:
        raise InvalidOracleReplyException(
            f"Respuesta fuera de contrato: {e.error_count()} errores"
        ) from e


class OracleAdapter:

    def __init__(
        self,
        oracle:  IntelligenceOracle,
        timeout: Optional[float] = None,
    ):
        self.oracle  = oracle
        self.timeout = timeout if timeout is not None else settings.ORACLE_TIMEOUT_SEC

    def build_request(
        self,
        transaction:        Transaction,
        history:            Sequence[Transaction],
        profile:            UserRiskProfile,
        pre_analysis:       PreAnalysisRisk,
        known_pattern_keys: Iterable[str],
    ) -> EnrichmentRequest:
        return EnrichmentRequest(
            transaction     = transaction,
            history_summary = HistorySummary(
                transaction_count = len(history),
                average_amount    = average_amount(history),
                top_locations     = most_common_locations(history),
                top_merchants     = most_common_merchants(history),
            ),
            profile_summary = ProfileSummary(
                risk_level                 = profile.risk_level,
                recent_suspicious_activity = profile.recent_suspicious_activity,
            ),
            pre_analysis_risk  = pre_analysis,
            known_pattern_keys = sorted(known_pattern_keys),
        )

    async def evaluate(
        self,
        transaction:        Transaction,
        history:            Sequence[Transaction],
        profile:            UserRiskProfile,
        pre_analysis:       PreAnalysisRisk,
        known_pattern_keys: Iterable[str],
    ) -> Optional[RawVerdict]:
        """
        Un solo intento contra el oráculo. Retorna None ante cualquier falla.
        """
        request = self.build_request(
            transaction, history, profile, pre_analysis, known_pattern_keys
        )
        user_id = transaction.user_id

        try:
            async with asyncio.timeout(self.timeout):
                text = await self.oracle.enrich(request)
            verdict = parse_reply(text)

        except TimeoutError:
            logger.warning(
                f"[OracleAdapter] Timeout ({self.timeout}s) para user={user_id}, "
                f"usando fallback"
            )
            return None
        except InvalidOracleReplyException as e:
            logger.warning(
                f"[OracleAdapter] Respuesta inválida para user={user_id}: {e.message}"
            )
            return None
        except OracleFailure as e:
            logger.warning(
                f"[OracleAdapter] Oráculo no disponible para user={user_id}: {e.message}"
            )
            return None
        except Exception as e:
            logger.error(f"[OracleAdapter] Error inesperado para user={user_id}: {e}")
            return None

        logger.debug(
            f"[OracleAdapter] Veredicto aceptado user={user_id}  "
            f"score={verdict.risk_score}  status={verdict.status.value}"
        )
        return verdict
