"""
pre_analysis.py
---------------
Señales heurísticas de riesgo calculadas antes de consultar al oráculo.

Factores:
  1. amount_anomaly    → desviación del monto vs promedio histórico
  2. location_anomaly  → ubicación fuera del top-3 habitual del usuario
  3. velocity_risk     → transacciones del usuario en la última hora
  4. time_anomaly      → hora del análisis (no de la transacción)
  5. merchant_risk     → comercio en categoría de alto riesgo

Sin historial solo aplican time_anomaly y merchant_risk, que no dependen
del pasado del usuario.

Es una función pura: no lee ni escribe estado compartido. El reloj
llega como parámetro para que las reglas horarias sean testeables.
"""

import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Sequence

from aegis.domain.schemas import PreAnalysisRisk, Transaction, UserRiskProfile

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------ #
#  Constantes de scoring                                             #
# ------------------------------------------------------------------ #
AMOUNT_DEVIATION_WEIGHT = 50     # pts por cada 100% de desviación
LOCATION_ANOMALY_SCORE  = 60     # ubicación fuera del top-3
VELOCITY_POINTS_PER_TX  = 25     # pts por tx en la ventana
VELOCITY_WINDOW         = timedelta(hours=1)
TIME_ANOMALY_SCORE      = 40
HIGH_RISK_MERCHANT      = 80
BASELINE_MERCHANT       = 20
TOP_N                   = 3

RISKY_MERCHANT_KEYWORDS = ("casino", "betting", "crypto", "atm", "wire transfer")


def most_common_locations(history: Sequence[Transaction], n: int = TOP_N) -> list[str]:
    """Top-n ubicaciones por frecuencia. Empates: orden de primera aparición."""
    return [loc for loc, _ in Counter(t.location for t in history).most_common(n)]


def most_common_merchants(history: Sequence[Transaction], n: int = TOP_N) -> list[str]:
    return [m for m, _ in Counter(t.merchant for t in history).most_common(n)]


def average_amount(history: Sequence[Transaction]) -> float | None:
    if not history:
        return None
    return sum(float(t.amount) for t in history) / len(history)


def is_risky_merchant(merchant: str, keywords: Sequence[str]) -> bool:
    merchant_lower = merchant.lower()
    return any(kw in merchant_lower for kw in keywords)


class PreAnalysisCalculator:

    def calculate(
        self,
        transaction: Transaction,
        history: Sequence[Transaction],
        profile: UserRiskProfile,
        now: datetime,
    ) -> PreAnalysisRisk:
        amount_anomaly   = 0.0
        location_anomaly = 0.0
        velocity_risk    = 0.0

        if history:
            # ── Monto vs promedio ─────────────────────────────────────
            avg = average_amount(history)
            if avg:
                deviation = abs(float(transaction.amount) - avg) / avg
                amount_anomaly = min(deviation * AMOUNT_DEVIATION_WEIGHT, 100.0)

            # ── Ubicación habitual ────────────────────────────────────
            if transaction.location not in most_common_locations(history):
                location_anomaly = float(LOCATION_ANOMALY_SCORE)

            # ── Velocidad: txs en la última hora ──────────────────────
            window_start = now - VELOCITY_WINDOW
            recent = sum(1 for t in history if t.timestamp > window_start)
            velocity_risk = float(min(recent * VELOCITY_POINTS_PER_TX, 100))

        # ── Hora del análisis ─────────────────────────────────────────
        # hour > 23 nunca se cumple; se conserva la regla tal cual
        hour = now.hour
        time_anomaly = float(TIME_ANOMALY_SCORE) if (hour < 6 or hour > 23) else 0.0

        merchant_risk = float(
            HIGH_RISK_MERCHANT
            if is_risky_merchant(transaction.merchant, RISKY_MERCHANT_KEYWORDS)
            else BASELINE_MERCHANT
        )

        risk = PreAnalysisRisk(
            amount_anomaly   = amount_anomaly,
            location_anomaly = location_anomaly,
            time_anomaly     = time_anomaly,
            velocity_risk    = velocity_risk,
            merchant_risk    = merchant_risk,
        )

        logger.debug(
            f"[PreAnalysis] user={transaction.user_id}  "
            f"profile={profile.risk_level.value}  history={len(history)}  "
            f"risk={risk.model_dump()}"
        )
        return risk
