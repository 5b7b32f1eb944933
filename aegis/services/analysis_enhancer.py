"""
analysis_enhancer.py
--------------------
Punto único que convierte un RawVerdict (del oráculo o del scorer de
reglas) en el RiskAnalysis canónico, y que aplica el resultado sobre
el estado compartido del motor.

enhance():
  - transaction_id único:  TXN-<epoch en ns>-<10 hex aleatorios>
  - timestamp y processing_time (ms desde que entró la transacción)
  - riskFactors completos: exactamente los 7 factores, faltantes = 0
  - scores en [0, 100] y snapshot del pre-análisis para auditoría
  - marcador de versión del schema

record():
  Perfil del usuario → patrones de fraude → ledger, en ese orden.
"""

import logging
import time
import uuid
from datetime import datetime

from aegis.domain.schemas import (
    RISK_FACTOR_NAMES,
    PreAnalysisRisk,
    RawVerdict,
    RiskAnalysis,
    Transaction,
)
from aegis.infrastructure.store.pattern_cache import FraudPatternCache
from aegis.infrastructure.store.profile_store import UserProfileStore
from aegis.infrastructure.store.transaction_ledger import TransactionLedger

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "2.1"


def generate_transaction_id() -> str:
    return f"TXN-{time.time_ns()}-{uuid.uuid4().hex[:10].upper()}"


def complete_risk_factors(factors: dict[str, float]) -> dict[str, float]:
    """Los siete factores, en orden fijo. Sin claves extra."""
    return {
        name: _clamp(factors.get(name, 0.0))
        for name in RISK_FACTOR_NAMES
    }


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


class AnalysisEnhancer:

    def __init__(
        self,
        profiles: UserProfileStore,
        patterns: FraudPatternCache,
        ledger:   TransactionLedger,
    ):
        self.profiles = profiles
        self.patterns = patterns
        self.ledger   = ledger

    def enhance(
        self,
        verdict:      RawVerdict,
        pre_analysis: PreAnalysisRisk,
        now:          datetime,
        started_at:   float,
    ) -> RiskAnalysis:
        """
        started_at es un valor de time.perf_counter() tomado al recibir
        la transacción.
        """
        processing_ms = (time.perf_counter() - started_at) * 1000

        return RiskAnalysis(
            transaction_id    = generate_transaction_id(),
            risk_score        = _clamp(verdict.risk_score),
            status            = verdict.status,
            confidence        = _clamp(verdict.confidence),
            risk_factors      = complete_risk_factors(verdict.risk_factors),
            summary           = verdict.summary,
            recommendations   = list(verdict.recommendations),
            alert_level       = verdict.alert_level,
            timestamp         = now,
            processing_time   = round(max(processing_ms, 0.0), 2),
            fallback          = verdict.fallback,
            pre_analysis_risk = pre_analysis,
            version           = SCHEMA_VERSION,
        )

    def record(self, transaction: Transaction, analysis: RiskAnalysis) -> None:
        profile = self.profiles.record_outcome(transaction.user_id, analysis.risk_score)
        pattern = self.patterns.record(transaction, analysis.risk_score)
        self.ledger.append(transaction, analysis)

        logger.debug(
            f"[Enhancer] Persistido {analysis.transaction_id}  "
            f"user={transaction.user_id}  profile={profile.risk_level.value}  "
            f"pattern={pattern.key if pattern else None}"
        )
