"""
transaction_ledger.py
---------------------
Registro en memoria de transacciones procesadas con su veredicto.

  - Append-only, en orden de llegada
  - Capacidad fija (LEDGER_CAPACITY, 1000 por defecto): al superarla
    se descarta la entrada más antigua (FIFO, semántica de ring buffer)
  - Las estadísticas se calculan bajo demanda recorriendo el ledger,
    sin contadores incrementales que puedan desincronizarse

El historial por usuario que usa el PreAnalysisCalculator sale de aquí,
por lo que también está acotado a las últimas N transacciones globales.
"""

import logging
import threading
from collections import deque

from aegis.domain.schemas import (
    LedgerRecord,
    LedgerStats,
    RiskAnalysis,
    Transaction,
    VerdictStatus,
)

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


class TransactionLedger:

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity debe ser >= 1")
        self.capacity = capacity
        self._records: deque[LedgerRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def append(self, transaction: Transaction, analysis: RiskAnalysis) -> LedgerRecord:
        record = LedgerRecord(transaction=transaction, analysis=analysis)
        with self._lock:
            if len(self._records) == self.capacity:
                evicted = self._records[0]
                logger.debug(
                    f"[Ledger] Capacidad alcanzada, descartando "
                    f"{evicted.analysis.transaction_id}"
                )
            # deque con maxlen descarta el extremo izquierdo
            self._records.append(record)
        return record

    def history_for(self, user_id: str) -> list[LedgerRecord]:
        """Registros del usuario en orden de llegada."""
        with self._lock:
            return [r for r in self._records if r.transaction.user_id == user_id]

    def recent(self, limit: int = 20) -> list[LedgerRecord]:
        """Los `limit` registros más recientes, el más nuevo primero."""
        if limit <= 0:
            return []
        with self._lock:
            snapshot = list(self._records)
        return list(reversed(snapshot[-limit:]))

    def stats(self) -> LedgerStats:
        with self._lock:
            snapshot = list(self._records)

        total = len(snapshot)
        if total == 0:
            return LedgerStats()

        by_status = {status: 0 for status in VerdictStatus}
        for r in snapshot:
            by_status[r.analysis.status] += 1

        return LedgerStats(
            total_transactions    = total,
            approved_transactions = by_status[VerdictStatus.APPROVED],
            flagged_transactions  = by_status[VerdictStatus.FLAGGED],
            denied_transactions   = by_status[VerdictStatus.DENIED],
            average_risk_score    = sum(r.analysis.risk_score for r in snapshot) / total,
            unique_users          = len({r.transaction.user_id for r in snapshot}),
        )
