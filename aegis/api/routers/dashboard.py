"""
dashboard.py — Router del Dashboard
-----------------------------------
Expone:
  GET  /api/stats                      → Estadísticas agregadas del motor
  GET  /api/recent-transactions?limit=N → Feed de las últimas transacciones
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from aegis.api.dependencies import get_risk_engine
from aegis.domain.schemas import (
    RecentTransaction,
    RecentTransactionsResponse,
    StatsResponse,
)
from aegis.services.risk_engine import RiskEngine

router = APIRouter(prefix="/api", tags=["Dashboard"])


@router.get(
    "/stats",
    response_model=StatsResponse,
    summary="Estadísticas agregadas del motor",
)
async def get_stats(
    engine: RiskEngine = Depends(get_risk_engine),
) -> StatsResponse:
    return StatsResponse(
        stats        = engine.stats(),
        generated_at = datetime.now(timezone.utc),
    )


@router.get(
    "/recent-transactions",
    response_model=RecentTransactionsResponse,
    summary="Últimas transacciones, la más reciente primero",
)
async def get_recent_transactions(
    limit:  int = Query(20, ge=1, le=1000, description="Máx. transacciones en el feed"),
    engine: RiskEngine = Depends(get_risk_engine),
) -> RecentTransactionsResponse:
    return RecentTransactionsResponse(
        transactions = [
            RecentTransaction(
                id         = r.analysis.transaction_id,
                amount     = r.transaction.amount,
                currency   = r.transaction.currency,
                merchant   = r.transaction.merchant,
                location   = r.transaction.location,
                status     = r.analysis.status,
                risk_score = r.analysis.risk_score,
                timestamp  = r.transaction.timestamp,
            )
            for r in engine.recent(limit)
        ]
    )
