"""
main.py
-------
Entry point del motor de riesgo AEGIS.

Orden de registro de middlewares (importa el orden, se ejecutan al revés):
  1. CORS            → primero en registrarse, último en ejecutarse
  2. SecurityHeaders → headers de seguridad y log de acceso

Ejecutar en desarrollo:
    uvicorn aegis.main:app --reload
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from aegis.api.middlewares import SecurityHeadersMiddleware, setup_cors
from aegis.api.routers import dashboard, transactions
from aegis.core.config import settings
from aegis.core.exceptions import RiskEngineException
from aegis.domain.schemas import HealthResponse
from aegis.services.risk_engine import build_risk_engine

logging.basicConfig(
    level  = settings.LOG_LEVEL,
    format = "%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ───────────────────────────────────────────────────────
    app.state.started_at  = time.monotonic()
    app.state.risk_engine = build_risk_engine()
    logger.info(
        f"[AEGIS] Motor iniciado  env={settings.ENVIRONMENT}  "
        f"oracle={'gemini:' + settings.GEMINI_MODEL if settings.GEMINI_API_KEY else 'API key missing, fallback only'}"
    )
    yield
    # ── Shutdown ──────────────────────────────────────────────────────
    logger.info("[AEGIS] Motor detenido")


app = FastAPI(
    title    = "AEGIS Fraud Detection API",
    version  = settings.APP_VERSION,
    docs_url = "/docs"  if settings.DEBUG else None,
    redoc_url= "/redoc" if settings.DEBUG else None,
    lifespan = lifespan,
)

# ── Middlewares (registrar en este orden exacto) ──────────────────────
setup_cors(
    app,
    allowed_origins=settings.ALLOWED_ORIGINS if settings.ENVIRONMENT == "production" else ["*"],
)
app.add_middleware(SecurityHeadersMiddleware)

# ── Routers ───────────────────────────────────────────────────────────
app.include_router(transactions.router)
app.include_router(dashboard.router)


# ── Handlers globales de excepciones ─────────────────────────────────
@app.exception_handler(RiskEngineException)
async def risk_engine_exception_handler(
    request: Request, exc: RiskEngineException
) -> JSONResponse:
    return JSONResponse(
        status_code = exc.status_code,
        content     = {"success": False, "error": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        f"Invalid {'.'.join(str(p) for p in err['loc'][1:]) or err['loc'][0]}: {err['msg']}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code = 400,
        content     = {"success": False, "error": "Validation failed", "details": details},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    error = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code = exc.status_code,
        content     = {"success": False, "error": error},
        headers     = getattr(exc, "headers", None),
    )


# ── Health check ──────────────────────────────────────────────────────
@app.get("/api/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    return HealthResponse(
        status    = "healthy",
        timestamp = datetime.now(timezone.utc),
        version   = settings.APP_VERSION,
        uptime    = time.monotonic() - request.app.state.started_at,
    )
