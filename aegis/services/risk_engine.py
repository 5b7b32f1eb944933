"""
risk_engine.py
--------------
Orquestador del motor de riesgo AEGIS.

No contiene lógica de scoring propia: delega en los componentes
especializados y garantiza que toda transacción termine con un veredicto.

Flujo por transacción:
  1. Received        → toma el lock del usuario
  2. PreAnalyzed     → historial + perfil → PreAnalysisCalculator
  3. OracleAttempted → OracleAdapter (un intento, con timeout)
  4a. OracleAccepted → se usa la respuesta validada del oráculo
  4b. OracleFailed   → FallbackRuleScorer
  5. Enhanced        → AnalysisEnhancer.enhance()
  6. Persisted       → perfil, patrones y ledger
  7. Returned

analyze() nunca lanza para una transacción estructuralmente válida:
la falla del oráculo siempre termina en un veredicto de fallback.

Concurrencia:
  Un asyncio.Lock por usuario cubre todo el flujo, incluida la llamada
  al oráculo. Así las txs de un mismo usuario se aplican en orden de
  llegada y la tx N nunca aparece en su propio historial. Usuarios
  distintos se procesan en paralelo; los stores serializan sus
  mutaciones internamente.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from aegis.core.config import settings
from aegis.domain.schemas import (
    EngineStats,
    LedgerRecord,
    RiskAnalysis,
    RiskLevel,
    Transaction,
    UserRiskProfile,
)
from aegis.infrastructure.store.pattern_cache import FraudPatternCache
from aegis.infrastructure.store.profile_store import UserProfileStore
from aegis.infrastructure.store.transaction_ledger import TransactionLedger
from aegis.services.analysis_enhancer import AnalysisEnhancer
from aegis.services.external_oracle import GeminiOracle, IntelligenceOracle
from aegis.services.fallback_scorer import FallbackRuleScorer
from aegis.services.oracle_adapter import OracleAdapter
from aegis.services.pre_analysis import PreAnalysisCalculator

logger = logging.getLogger(__name__)


def local_now() -> datetime:
    """Hora local con zona horaria: las reglas horarias usan la hora del servidor."""
    return datetime.now().astimezone()


def aware_clock(clock: Callable[[], datetime]) -> Callable[[], datetime]:
    """
    Envuelve un reloj para que siempre retorne datetimes con zona horaria.
    Un valor naive se interpreta como hora local del servidor (conserva la
    hora de pared), igual que local_now(). Los timestamps de las
    transacciones también son aware (Transaction.ensure_aware).
    """
    def now() -> datetime:
        value = clock()
        return value.astimezone() if value.tzinfo is None else value
    return now


class RiskEngine:

    def __init__(
        self,
        oracle:          IntelligenceOracle,
        clock:           Callable[[], datetime] = local_now,
        ledger_capacity: Optional[int] = None,
        oracle_timeout:  Optional[float] = None,
    ):
        self.clock          = aware_clock(clock)
        self.profiles       = UserProfileStore(clock=self.clock)
        self.patterns       = FraudPatternCache(clock=self.clock)
        self.ledger         = TransactionLedger(
            ledger_capacity if ledger_capacity is not None else settings.LEDGER_CAPACITY
        )
        self.pre_analysis   = PreAnalysisCalculator()
        self.fallback       = FallbackRuleScorer()
        self.oracle_adapter = OracleAdapter(oracle, timeout=oracle_timeout)
        self.enhancer       = AnalysisEnhancer(self.profiles, self.patterns, self.ledger)
        self._user_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------ #
    #  Entry point                                                       #
    # ------------------------------------------------------------------ #

    async def analyze(self, transaction: Transaction) -> RiskAnalysis:
        started_at = time.perf_counter()
        user_id    = transaction.user_id

        async with self._lock_for(user_id):
            now     = self.clock()
            history = [r.transaction for r in self.ledger.history_for(user_id)]
            profile = self.profiles.get_or_create(user_id)

            pre_analysis = self.pre_analysis.calculate(transaction, history, profile, now)

            verdict = await self.oracle_adapter.evaluate(
                transaction        = transaction,
                history            = history,
                profile            = profile,
                pre_analysis       = pre_analysis,
                known_pattern_keys = self.patterns.keys(),
            )
            if verdict is None:
                verdict = self.fallback.score(transaction, now)

            analysis = self.enhancer.enhance(verdict, pre_analysis, now, started_at)
            self.enhancer.record(transaction, analysis)

        logger.info(
            f"[RiskEngine] DECISION  "
            f"user={user_id}  "
            f"score={analysis.risk_score}  "
            f"status={analysis.status.value}  "
            f"fallback={analysis.fallback}  "
            f"time={analysis.processing_time}ms"
        )
        return analysis

    # ------------------------------------------------------------------ #
    #  Consultas                                                         #
    # ------------------------------------------------------------------ #

    def history_for(self, user_id: str) -> list[LedgerRecord]:
        return self.ledger.history_for(user_id)

    def profile_for(self, user_id: str) -> Optional[UserRiskProfile]:
        return self.profiles.get(user_id)

    def recent(self, limit: int = 20) -> list[LedgerRecord]:
        return self.ledger.recent(limit)

    def stats(self) -> EngineStats:
        ledger_stats = self.ledger.stats()
        return EngineStats(
            **ledger_stats.model_dump(),
            fraud_patterns_detected = self.patterns.size(),
            high_risk_users         = self.profiles.count_by_level(RiskLevel.HIGH),
        )

    # ------------------------------------------------------------------ #
    #  Utilidades                                                        #
    # ------------------------------------------------------------------ #

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        # Sin await entre el get y el set: atómico dentro del event loop
        lock = self._user_locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._user_locks[user_id] = lock
        return lock


def build_risk_engine(oracle: Optional[IntelligenceOracle] = None) -> RiskEngine:
    """Motor con el oráculo Gemini configurado desde settings."""
    return RiskEngine(oracle=oracle or GeminiOracle())
