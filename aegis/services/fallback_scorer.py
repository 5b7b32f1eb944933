"""
fallback_scorer.py
------------------
Scorer determinístico basado en reglas. Sustituye al oráculo cuando
éste falla, hace timeout o responde algo que no cumple el contrato.

Reglas:
  base 20
  +30 monto > 5000   (o +15 si monto > 1000)
  +20 fuera de horario (hora < 6 o > 22)
  +40 comercio casino / betting / crypto

Los riskFactors son constantes heurísticas, no se derivan del score.
Es inconsistente con el scoring dinámico del oráculo, pero se conserva
para mantener paridad de comportamiento con los veredictos históricos.
"""

from datetime import datetime

from aegis.domain.schemas import AlertLevel, RawVerdict, Transaction, VerdictStatus
from aegis.services.pre_analysis import is_risky_merchant

BASE_RISK            = 20
HIGH_AMOUNT          = 5000
HIGH_AMOUNT_PENALTY  = 30
MID_AMOUNT           = 1000
MID_AMOUNT_PENALTY   = 15
OFF_HOURS_PENALTY    = 20
MERCHANT_PENALTY     = 40
FALLBACK_CONFIDENCE  = 75

DENY_THRESHOLD = 70      # score > 70  → Denied / HIGH
FLAG_THRESHOLD = 40      # score > 40  → Flagged / MEDIUM

FALLBACK_MERCHANT_KEYWORDS = ("casino", "betting", "crypto")

FALLBACK_RECOMMENDATIONS = ("Manual review recommended", "Verify user identity")


def is_off_hours(hour: int) -> bool:
    return hour < 6 or hour > 22


class FallbackRuleScorer:
    """Función pura de (monto, comercio, hora)."""

    def score(self, transaction: Transaction, now: datetime) -> RawVerdict:
        amount    = float(transaction.amount)
        off_hours = is_off_hours(now.hour)

        risk_score = BASE_RISK
        if amount > HIGH_AMOUNT:
            risk_score += HIGH_AMOUNT_PENALTY
        elif amount > MID_AMOUNT:
            risk_score += MID_AMOUNT_PENALTY

        if off_hours:
            risk_score += OFF_HOURS_PENALTY

        if is_risky_merchant(transaction.merchant, FALLBACK_MERCHANT_KEYWORDS):
            risk_score += MERCHANT_PENALTY

        risk_score = min(risk_score, 100)

        if risk_score > DENY_THRESHOLD:
            status, alert = VerdictStatus.DENIED, AlertLevel.HIGH
        elif risk_score > FLAG_THRESHOLD:
            status, alert = VerdictStatus.FLAGGED, AlertLevel.MEDIUM
        else:
            status, alert = VerdictStatus.APPROVED, AlertLevel.LOW

        return RawVerdict(
            risk_score      = risk_score,
            status          = status,
            summary         = f"Fallback analysis: {status.value} based on rule-based evaluation",
            confidence      = FALLBACK_CONFIDENCE,
            risk_factors    = {
                "LocationAnomaly": 25,
                "AmountDeviation": 60 if amount > MID_AMOUNT else 20,
                "MerchantRisk":    30,
                "TimePattern":     70 if off_hours else 10,
                "CardUsage":       20,
                "UserBehavior":    25,
                "VelocityCheck":   15,
            },
            recommendations = list(FALLBACK_RECOMMENDATIONS),
            alert_level     = alert,
            fallback        = True,
        )
