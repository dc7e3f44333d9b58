from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global application settings."""

    # Application
    ENVIRONMENT: Literal["local", "development", "production", "test"] = "local"
    LOG_LEVEL: str = "INFO"
    CURRENCY: str = "TND"

    # Public URLs used to build gateway callback and return URLs
    APP_URL: str = "http://localhost:8000"
    FRONTEND_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    DB_ECHO: bool = False

    # Order transaction bounds (seconds)
    ORDER_TX_MAX_WAIT_SECONDS: float = 5.0
    ORDER_TX_TIMEOUT_SECONDS: float = 10.0

    # Auth
    # Placeholder default keeps local/test runs working. Real deployments must
    # override via env.
    AUTH_JWT_SECRET: str = "test-jwt-secret"
    AUTH_JWT_ALGORITHM: str = "HS256"

    # Card gateway (Paykassma)
    PAYKASSMA_API_URL: str = "https://api.paykassma.com"
    PAYKASSMA_MERCHANT_ID: Optional[str] = None
    PAYKASSMA_SECRET_KEY: Optional[str] = None
    PAYKASSMA_TEST_MODE: bool = False

    # Mobile / wallet gateway (Konnect)
    KONNECT_API_URL: str = "https://api.konnect.network"
    KONNECT_API_KEY: Optional[str] = None
    KONNECT_WALLET_ID: Optional[str] = None
    KONNECT_WEBHOOK_SECRET: Optional[str] = None

    GATEWAY_HTTP_TIMEOUT: float = 15.0

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def assemble_db_connection(cls, v: Optional[str]) -> str:
        if isinstance(v, str):
            if v.startswith("postgresql://"):
                return v.replace("postgresql://", "postgresql+psycopg://", 1)
        return v


@lru_cache
def get_settings() -> Settings:
    """
    Return the global settings instance, cached.
    """
    return Settings()
