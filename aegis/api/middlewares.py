"""
middlewares.py
--------------
Middlewares del motor de riesgo AEGIS.

Middlewares incluidos:
  1. SecurityHeadersMiddleware → agrega headers de seguridad HTTP
  2. setup_cors()              → configura CORS para el dashboard

Orden de registro en main.py (importa el orden):
  1. CORS            → primero, para que preflight requests pasen
  2. SecurityHeaders → segundo, aplica a todas las respuestas
"""

import logging
import time
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────
# 1. Security Headers Middleware
# ─────────────────────────────────────────────────────────────────────

class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Agrega headers de seguridad HTTP a todas las respuestas y
    registra una línea de acceso por request.

    Headers incluidos:
      - X-Content-Type-Options    → evita MIME sniffing
      - X-Frame-Options           → evita clickjacking
      - Strict-Transport-Security → fuerza HTTPS
      - Content-Security-Policy   → restricción de fuentes de contenido
      - Referrer-Policy           → controla información del referrer
      - Cache-Control             → evita cacheo de respuestas sensibles
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start    = time.perf_counter()
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Strict-Transport-Security"] = (
            "max-age=31536000; includeSubDomains"
        )
        response.headers["Content-Security-Policy"] = "default-src 'self'"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # Los veredictos contienen datos del usuario: nunca cachear
        response.headers["Cache-Control"] = (
            "no-store, no-cache, must-revalidate, private"
        )

        elapsed_ms = (time.perf_counter() - start) * 1000
        client     = request.client.host if request.client else "-"
        logger.info(
            f"[HTTP] {client} {request.method} {request.url.path} "
            f"{response.status_code} {elapsed_ms:.1f}ms"
        )
        return response


# ─────────────────────────────────────────────────────────────────────
# 2. CORS
# ─────────────────────────────────────────────────────────────────────

def setup_cors(app: FastAPI, allowed_origins: list[str]) -> None:
    """
    Configura CORS para el dashboard.

    En desarrollo se permite cualquier origen ("*").
    En producción: solo el dominio real del frontend (ALLOWED_ORIGINS).
    """
    wildcard = "*" in allowed_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins     = allowed_origins,
        # Los browsers rechazan credenciales con origen comodín
        allow_credentials = not wildcard,
        allow_methods     = ["GET", "POST", "OPTIONS"],
        allow_headers     = ["Content-Type", "Authorization", "X-Request-ID"],
        max_age           = 600,
    )
