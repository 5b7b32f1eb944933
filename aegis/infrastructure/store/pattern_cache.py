"""
pattern_cache.py
----------------
Cache de patrones de fraude: formas recurrentes de transacción
(comercio, ubicación, bucket de monto) asociadas a veredictos de
riesgo alto. Las claves se envían al oráculo como evidencia contextual.

Clave:  "{merchant}-{location}-{floor(amount / 100) * 100}"

avg_risk NO es una media aritmética: cada veredicto nuevo pesa la mitad
(avg = (avg + score) / 2), así que el valor sigue a los más recientes.
"""

import logging
import math
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from aegis.domain.schemas import FraudPatternEntry, Transaction

logger = logging.getLogger(__name__)

PATTERN_SCORE_THRESHOLD = 80
AMOUNT_BUCKET           = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def pattern_key(transaction: Transaction) -> str:
    bucket = math.floor(transaction.amount / AMOUNT_BUCKET) * AMOUNT_BUCKET
    return f"{transaction.merchant}-{transaction.location}-{bucket}"


class FraudPatternCache:

    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._patterns: dict[str, FraudPatternEntry] = {}
        self._lock  = threading.Lock()
        self._clock = clock

    def record(self, transaction: Transaction, risk_score: float) -> Optional[FraudPatternEntry]:
        """Registra el veredicto si risk_score > 80. Retorna la entrada actualizada."""
        if risk_score <= PATTERN_SCORE_THRESHOLD:
            return None

        key = pattern_key(transaction)
        with self._lock:
            entry = self._patterns.get(key)
            if entry is None:
                entry = FraudPatternEntry(
                    key       = key,
                    count     = 1,
                    avg_risk  = float(risk_score),
                    last_seen = self._clock(),
                )
                self._patterns[key] = entry
                logger.info(f"[PatternCache] Nuevo patrón: {key}  risk={risk_score}")
            else:
                entry.observe(risk_score, self._clock())
            return entry.model_copy()

    def get(self, key: str) -> Optional[FraudPatternEntry]:
        with self._lock:
            entry = self._patterns.get(key)
            return entry.model_copy() if entry else None

    def keys(self) -> set[str]:
        with self._lock:
            return set(self._patterns)

    def size(self) -> int:
        with self._lock:
            return len(self._patterns)
