# ==== APPLICATION SETTINGS CONFIGURATION ==== #

"""
Settings configuration for the procurement core library.

This module provides centralized configuration management using Pydantic Settings
with environment variable loading for the record store backend, the collection
cache, the budget ledger and observability.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


# ==== MAIN SETTINGS CLASS ==== #


class Settings(BaseSettings):
    """
    Library settings loaded from environment variables.

    Covers store backend selection, cache sizing, ledger spend strategy,
    store circuit breaker thresholds and observability endpoints.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore'
    )

    # --► CORE SETTINGS
    APP_ENV: str = "dev"
    SERVICE_NAME: str = "procurement-core"
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str | None = None

    # --► RECORD STORE CONFIGURATION
    STORE_BACKEND: str = "memory"  # memory|redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_KEY_PREFIX: str = "pms"

    # --► STORE CIRCUIT BREAKER
    STORE_CIRCUIT_FAILURE_THRESHOLD: int = 5
    STORE_CIRCUIT_RECOVERY_SECONDS: float = 10.0

    # --► COLLECTION CACHE
    CACHE_TTL_SECONDS: float = 30.0
    CACHE_MAX_ENTRIES: int = 512

    # --► BUDGET LEDGER
    LEDGER_SPEND_STRATEGY: str = "read_modify_write"  # read_modify_write|atomic

    # --► OBSERVABILITY CONFIGURATION
    OTEL_EXPORTER_OTLP_ENDPOINT: str | None = None
    OTEL_EXPORTER_OTLP_HEADERS: str | None = None
    OTEL_SERVICE_NAME: str | None = None
    OTEL_RESOURCE_ATTRIBUTES: str | None = None


# ==== GLOBAL SETTINGS INSTANCE ==== #


# Global settings instance for library-wide access
settings = Settings()


def get_settings() -> Settings:
    """
    Get global settings instance.

    Returns:
        Settings: Global settings instance
    """
    return settings
