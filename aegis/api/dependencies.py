"""
dependencies.py
---------------
Dependencias reutilizables para inyectar en los routers de FastAPI.

get_risk_engine:
  El motor se construye una sola vez en el lifespan de main.py y vive
  en app.state. Los tests pueden reemplazarlo con
  app.dependency_overrides[get_risk_engine].
"""

from fastapi import Request

from aegis.services.risk_engine import RiskEngine


def get_risk_engine(request: Request) -> RiskEngine:
    return request.app.state.risk_engine
