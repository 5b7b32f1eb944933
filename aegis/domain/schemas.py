"""
schemas.py
----------
Schemas Pydantic del motor de riesgo: entidades del dominio, contrato
con el oráculo de inteligencia y responses de la API.

Todos los modelos serializan con alias camelCase (riskScore, userId...)
para mantener el contrato JSON que consume el dashboard, y aceptan
tanto el alias como el nombre del campo en Python.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional, List

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel


# ─────────────────────────────────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────────────────────────────────

class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CAD = "CAD"
    AUD = "AUD"


class CardType(str, Enum):
    CREDIT  = "credit"
    DEBIT   = "debit"
    PREPAID = "prepaid"


class VerdictStatus(str, Enum):
    APPROVED = "Approved"
    FLAGGED  = "Flagged"
    DENIED   = "Denied"


class AlertLevel(str, Enum):
    LOW      = "LOW"
    MEDIUM   = "MEDIUM"
    HIGH     = "HIGH"
    CRITICAL = "CRITICAL"


class RiskLevel(str, Enum):
    LOW    = "LOW"
    MEDIUM = "MEDIUM"
    HIGH   = "HIGH"


# Los siete factores que todo veredicto debe exponer, en este orden
RISK_FACTOR_NAMES: tuple[str, ...] = (
    "LocationAnomaly",
    "AmountDeviation",
    "MerchantRisk",
    "TimePattern",
    "CardUsage",
    "UserBehavior",
    "VelocityCheck",
)

# Montos como Decimal en memoria, pero como número en el JSON de salida
Amount = Annotated[
    Decimal,
    Field(gt=0),
    PlainSerializer(float, return_type=float, when_used="json"),
]

Score = Annotated[float, Field(ge=0, le=100)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _is_number(value) -> bool:
    # bool es subclase de int: True no es un score válido
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# ─────────────────────────────────────────────────────────────────────
# TRANSACCIONES
# ─────────────────────────────────────────────────────────────────────

class TransactionRequest(CamelModel):
    """
    Payload de entrada del endpoint /api/analyze-fraud.
    Toda transacción que llega al motor ya pasó por esta validación.
    """
    amount:    Amount
    currency:  Currency
    merchant:  str      = Field(..., min_length=2)
    card_type: CardType
    location:  str      = Field(..., min_length=2)
    user_id:   str      = Field(..., min_length=3)

    model_config = ConfigDict(extra="ignore")


class Transaction(CamelModel):
    """Transacción recibida, inmutable una vez creada."""
    amount:     Amount
    currency:   Currency
    merchant:   str
    card_type:  CardType
    location:   str
    user_id:    str
    timestamp:  datetime
    # ── Metadatos de red (opcionales, nunca se exponen en el historial) ──
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    model_config = ConfigDict(frozen=True)

    @field_validator("timestamp")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        """Timestamps sin zona horaria se interpretan como UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# ─────────────────────────────────────────────────────────────────────
# RIESGO
# ─────────────────────────────────────────────────────────────────────

class PreAnalysisRisk(CamelModel):
    """Señales heurísticas calculadas antes de consultar al oráculo."""
    amount_anomaly:   Score = 0.0
    location_anomaly: Score = 0.0
    time_anomaly:     Score = 0.0
    velocity_risk:    Score = 0.0
    merchant_risk:    Score = 0.0

    model_config = ConfigDict(frozen=True)


class RawVerdict(CamelModel):
    """
    Veredicto sin finalizar: lo produce el parser de la respuesta del
    oráculo o el FallbackRuleScorer. El AnalysisEnhancer lo convierte
    en RiskAnalysis.

    Las validaciones replican el contrato exigido al oráculo: cualquier
    valor fuera de rango invalida la respuesta completa (no se repara).
    """
    risk_score:      Score
    status:          VerdictStatus
    summary:         str
    confidence:      Score
    risk_factors:    dict[str, float]
    recommendations: List[str]
    alert_level:     AlertLevel
    fallback:        bool = False

    @field_validator("risk_score", "confidence", mode="before")
    @classmethod
    def must_be_number(cls, v):
        if not _is_number(v):
            raise ValueError("debe ser numérico")
        return v

    @field_validator("risk_factors", mode="before")
    @classmethod
    def known_factors_in_range(cls, v):
        """Acepta un subconjunto de los siete factores; descarta claves desconocidas."""
        if not isinstance(v, dict):
            raise ValueError("riskFactors debe ser un objeto")
        factors = {}
        for name in RISK_FACTOR_NAMES:
            if name not in v:
                continue
            value = v[name]
            if not _is_number(value) or not 0 <= value <= 100:
                raise ValueError(f"{name} fuera de rango: {value!r}")
            factors[name] = float(value)
        return factors


class RiskAnalysis(CamelModel):
    """Veredicto canónico devuelto por RiskEngine.analyze()."""
    transaction_id:    str
    risk_score:        Score
    status:            VerdictStatus
    confidence:        Score
    risk_factors:      dict[str, Score]
    summary:           str
    recommendations:   List[str]
    alert_level:       AlertLevel
    timestamp:         datetime
    processing_time:   float = Field(..., ge=0)   # milisegundos
    fallback:          bool = False
    pre_analysis_risk: PreAnalysisRisk
    version:           str

    model_config = ConfigDict(frozen=True)


# ─────────────────────────────────────────────────────────────────────
# ESTADO POR USUARIO Y PATRONES
# ─────────────────────────────────────────────────────────────────────

class UserRiskProfile(CamelModel):
    user_id:                    str
    risk_level:                 RiskLevel = RiskLevel.LOW
    total_transactions:         int       = 0
    suspicious_transactions:    int       = 0
    recent_suspicious_activity: bool      = False
    created_at:                 datetime
    last_updated:               datetime


class FraudPatternEntry(CamelModel):
    key:       str
    count:     int
    avg_risk:  float
    last_seen: datetime

    def observe(self, risk_score: float, seen_at: datetime) -> None:
        """Media con sesgo a lo reciente: cada observación nueva pesa la mitad."""
        self.count    += 1
        self.avg_risk  = (self.avg_risk + risk_score) / 2
        self.last_seen = seen_at


class LedgerRecord(CamelModel):
    transaction: Transaction
    analysis:    RiskAnalysis

    model_config = ConfigDict(frozen=True)


class LedgerStats(CamelModel):
    total_transactions:    int   = 0
    approved_transactions: int   = 0
    flagged_transactions:  int   = 0
    denied_transactions:   int   = 0
    average_risk_score:    float = 0.0
    unique_users:          int   = 0


class EngineStats(LedgerStats):
    fraud_patterns_detected: int = 0
    high_risk_users:         int = 0


# ─────────────────────────────────────────────────────────────────────
# CONTRATO CON EL ORÁCULO
# ─────────────────────────────────────────────────────────────────────

class HistorySummary(CamelModel):
    transaction_count: int
    average_amount:    Optional[float] = None
    top_locations:     List[str] = Field(default_factory=list)
    top_merchants:     List[str] = Field(default_factory=list)


class ProfileSummary(CamelModel):
    risk_level:                 RiskLevel
    recent_suspicious_activity: bool


class EnrichmentRequest(CamelModel):
    transaction:        Transaction
    history_summary:    HistorySummary
    profile_summary:    ProfileSummary
    pre_analysis_risk:  PreAnalysisRisk
    known_pattern_keys: List[str] = Field(default_factory=list)


# ─────────────────────────────────────────────────────────────────────
# RESPONSES DE LA API
# ─────────────────────────────────────────────────────────────────────

class AnalyzeMetadata(CamelModel):
    processed_at:    datetime
    processing_time: float


class AnalyzeResponse(CamelModel):
    success:  bool = True
    analysis: RiskAnalysis
    metadata: AnalyzeMetadata


class HistoryItem(CamelModel):
    """Transacción del historial sin metadatos de red."""
    amount:    Amount
    currency:  Currency
    merchant:  str
    card_type: CardType
    location:  str
    user_id:   str
    timestamp: datetime
    analysis:  RiskAnalysis


class HistoryResponse(CamelModel):
    success:      bool = True
    transactions: List[HistoryItem]
    total:        int


class ProfileResponse(CamelModel):
    success: bool = True
    profile: UserRiskProfile


class StatsResponse(CamelModel):
    success:      bool = True
    stats:        EngineStats
    generated_at: datetime


class RecentTransaction(CamelModel):
    id:         str
    amount:     Amount
    currency:   Currency
    merchant:   str
    location:   str
    status:     VerdictStatus
    risk_score: float
    timestamp:  datetime


class RecentTransactionsResponse(CamelModel):
    success:      bool = True
    transactions: List[RecentTransaction]


class HealthResponse(BaseModel):
    status:    str
    timestamp: datetime
    version:   str
    uptime:    float
