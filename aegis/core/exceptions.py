"""
exceptions.py
-------------
Excepciones personalizadas del motor de riesgo AEGIS.

Todas heredan de RiskEngineException para poder capturarlas
en un solo handler global en main.py.

Las fallas del oráculo (OracleFailure) nunca llegan al cliente:
el OracleAdapter las captura y el orquestador sustituye el veredicto
por el del FallbackRuleScorer.
"""


class RiskEngineException(Exception):
    """Base de todas las excepciones del motor."""
    status_code: int = 500
    message: str = "Error interno del motor de riesgo."

    def __init__(self, message: str | None = None):
        self.message = message or self.__class__.message
        super().__init__(self.message)


# ─────────────────────────────────────────────────────────────────────
# Errores de consulta
# ─────────────────────────────────────────────────────────────────────

class ProfileNotFoundException(RiskEngineException):
    """No existe perfil de riesgo para el user_id solicitado."""
    status_code = 404
    message = "User profile not found"


# ─────────────────────────────────────────────────────────────────────
# Errores del oráculo de inteligencia
# Se recuperan localmente con el scorer de reglas.
# ─────────────────────────────────────────────────────────────────────

class OracleFailure(RiskEngineException):
    """El oráculo no produjo un veredicto utilizable."""
    status_code = 503
    message = "El oráculo de inteligencia no está disponible."


class OracleUnavailableException(OracleFailure):
    """Error de transporte, timeout o falta de credenciales."""
    message = "No se pudo contactar al oráculo de inteligencia."


class InvalidOracleReplyException(OracleFailure):
    """La respuesta no es JSON válido o no cumple el contrato de RiskAnalysis."""
    status_code = 502
    message = "Respuesta del oráculo con formato inválido."
