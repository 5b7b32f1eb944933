"""
transactions.py — Router de análisis de transacciones
------------------------------------------------------
Expone:
  POST /api/analyze-fraud               → Evalúa una transacción
  GET  /api/user/{user_id}/history      → Historial paginado del usuario
  GET  /api/user/{user_id}/profile      → Perfil de riesgo del usuario
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request

from aegis.api.dependencies import get_risk_engine
from aegis.core.exceptions import ProfileNotFoundException
from aegis.domain.schemas import (
    AnalyzeMetadata,
    AnalyzeResponse,
    HistoryItem,
    HistoryResponse,
    ProfileResponse,
    Transaction,
    TransactionRequest,
)
from aegis.services.risk_engine import RiskEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Transactions"])

# Metadatos de red que nunca salen en el historial
_NETWORK_FIELDS = {"ip_address", "user_agent"}


@router.post("/analyze-fraud", response_model=AnalyzeResponse)
async def analyze_fraud(
    body:    TransactionRequest,
    request: Request,
    engine:  RiskEngine = Depends(get_risk_engine),
) -> AnalyzeResponse:
    transaction = Transaction(
        **body.model_dump(),
        timestamp  = datetime.now(timezone.utc),
        ip_address = request.client.host if request.client else None,
        user_agent = request.headers.get("user-agent"),
    )

    logger.info(f"[API] Analizando transacción de user={transaction.user_id}")
    analysis = await engine.analyze(transaction)

    return AnalyzeResponse(
        analysis = analysis,
        metadata = AnalyzeMetadata(
            processed_at    = datetime.now(timezone.utc),
            processing_time = analysis.processing_time,
        ),
    )


@router.get("/user/{user_id}/history", response_model=HistoryResponse)
async def get_user_history(
    user_id: str,
    limit:   int = Query(50, ge=1, le=1000),
    offset:  int = Query(0,  ge=0),
    engine:  RiskEngine = Depends(get_risk_engine),
) -> HistoryResponse:
    records = engine.history_for(user_id)
    page    = records[offset:offset + limit]

    return HistoryResponse(
        transactions = [
            HistoryItem(
                **r.transaction.model_dump(exclude=_NETWORK_FIELDS),
                analysis = r.analysis,
            )
            for r in page
        ],
        total = len(records),
    )


@router.get("/user/{user_id}/profile", response_model=ProfileResponse)
async def get_user_profile(
    user_id: str,
    engine:  RiskEngine = Depends(get_risk_engine),
) -> ProfileResponse:
    profile = engine.profile_for(user_id)
    if profile is None:
        raise ProfileNotFoundException()
    return ProfileResponse(profile=profile)
