"""
Utilidades compartidas por la suite: factories de transacciones y
veredictos, relojes fijos y oráculos de prueba (sin red).
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from aegis.core.exceptions import OracleUnavailableException
from aegis.domain.schemas import (
    AlertLevel,
    PreAnalysisRisk,
    RiskAnalysis,
    Transaction,
    VerdictStatus,
)

AFTERNOON = datetime(2024, 5, 14, 14, 0, tzinfo=timezone.utc)
NIGHT     = datetime(2024, 5, 14, 2, 0, tzinfo=timezone.utc)


def fixed_clock(moment: datetime):
    return lambda: moment


def make_transaction(**overrides) -> Transaction:
    data = {
        "amount":    Decimal("100.00"),
        "currency":  "USD",
        "merchant":  "Best Buy",
        "card_type": "credit",
        "location":  "New York",
        "user_id":   "user_001",
        "timestamp": AFTERNOON - timedelta(days=1),
    }
    data.update(overrides)
    if not isinstance(data["amount"], Decimal):
        data["amount"] = Decimal(str(data["amount"]))
    return Transaction(**data)


def make_analysis(
    risk_score: float = 20,
    status: VerdictStatus = VerdictStatus.APPROVED,
    transaction_id: str = "TXN-1-TEST",
) -> RiskAnalysis:
    return RiskAnalysis(
        transaction_id    = transaction_id,
        risk_score        = risk_score,
        status            = status,
        confidence        = 80,
        risk_factors      = {},
        summary           = "test",
        recommendations   = [],
        alert_level       = AlertLevel.LOW,
        timestamp         = AFTERNOON,
        processing_time   = 1.0,
        pre_analysis_risk = PreAnalysisRisk(),
        version           = "2.1",
    )


def oracle_reply(**overrides) -> dict:
    reply = {
        "riskScore": 42,
        "summary": "Moderate risk due to unusual location",
        "status": "Flagged",
        "confidence": 88,
        "riskFactors": {
            "LocationAnomaly": 60,
            "AmountDeviation": 10,
            "MerchantRisk": 20,
            "TimePattern": 0,
            "CardUsage": 15,
            "UserBehavior": 30,
            "VelocityCheck": 5,
        },
        "recommendations": ["Send SMS verification"],
        "alertLevel": "MEDIUM",
    }
    reply.update(overrides)
    return reply


class StubOracle:
    """Responde siempre lo mismo y guarda los requests recibidos."""

    def __init__(self, reply):
        self.reply    = reply if isinstance(reply, str) else json.dumps(reply)
        self.requests = []

    async def enrich(self, request):
        self.requests.append(request)
        return self.reply


class ScriptedOracle:
    """Responde con un riskScore distinto por llamada, en orden."""

    def __init__(self, scores):
        self.scores   = list(scores)
        self.requests = []

    async def enrich(self, request):
        self.requests.append(request)
        score  = self.scores[len(self.requests) - 1]
        status = "Denied" if score > 70 else "Approved"
        return json.dumps(oracle_reply(riskScore=score, status=status))


class FailingOracle:
    def __init__(self, exc: Exception | None = None):
        self.exc   = exc or OracleUnavailableException("sin conexión")
        self.calls = 0

    async def enrich(self, request):
        self.calls += 1
        raise self.exc


class SlowOracle:
    def __init__(self, delay: float, reply=None):
        self.delay    = delay
        self.reply    = json.dumps(reply or oracle_reply())
        self.requests = []

    async def enrich(self, request):
        self.requests.append(request)
        await asyncio.sleep(self.delay)
        return self.reply


class RendezvousOracle:
    """
    Solo responde cuando `parties` llamadas están en curso a la vez.
    Si el motor serializara a usuarios distintos, la primera llamada
    quedaría esperando hasta el timeout.
    """

    def __init__(self, parties: int):
        self.parties  = parties
        self.arrived  = 0
        self.all_here = asyncio.Event()

    async def enrich(self, request):
        self.arrived += 1
        if self.arrived >= self.parties:
            self.all_here.set()
        await self.all_here.wait()
        return json.dumps(oracle_reply())
