from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    # Configuracion general
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_VERSION: str = "1.0.0"

    # Oráculo de inteligencia (Gemini)
    # Sin API key el motor opera siempre con el scorer de reglas
    GEMINI_API_KEY: str | None = None
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_API_URL: str = (
        "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
    )
    ORACLE_TIMEOUT_SEC: float = 15.0

    # Ledger en memoria: últimas N transacciones
    LEDGER_CAPACITY: int = 1000

    # CORS: lista de orígenes permitidos separados por coma en el .env
    # Ejemplo en .env: ALLOWED_ORIGINS=http://localhost:3000,http://localhost:5173
    ALLOWED_ORIGINS: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_origins(cls, v):
        """Permite definir ALLOWED_ORIGINS como string separado por comas en .env"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    model_config = SettingsConfigDict(
        env_file          = ".env",
        env_file_encoding = "utf-8",
        case_sensitive    = True,
        extra             = "ignore",
    )


settings = Settings()
