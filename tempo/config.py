# /app/tempo/config.py

from __future__ import annotations

import logging
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger(__name__)

_LOCK_BACKENDS = ("memory", "redis")


class Settings(BaseSettings):
    """
    Project-wide configuration. Reads environment variables.
    Pydantic v2 + pydantic-settings.
    """
    model_config = SettingsConfigDict(
        case_sensitive=False,  # env var names are case-insensitive
        extra="ignore",
    )

    # --- Core ---
    ENVIRONMENT: str = Field("dev", description="Application environment (dev, test, prod)")

    # --- Database ---
    DATABASE_URL: str = Field(
        ..., description="Async database URL (postgresql+asyncpg://... or sqlite+aiosqlite://...)"
    )
    DB_ECHO: bool = Field(False, description="Echo SQL statements to the log")

    # --- Identity tokens ---
    JWT_SECRET_KEY: str = Field(..., description="Key used to verify identity tokens")
    JWT_ALGORITHM: str = Field("HS256", description="Algorithm of identity tokens")
    JWT_AUDIENCE: Optional[str] = Field(None, description="Expected 'aud' claim, if any")
    JWT_ISSUER: Optional[str] = Field(None, description="Expected 'iss' claim, if any")
    JWT_DEV_TOKEN_EXPIRE_MINUTES: int = Field(60, description="Lifetime of locally minted tokens")

    # --- Language model ---
    LLM_PROVIDER: str = Field("stub", description="LLM provider to use ('stub', 'gemini')")
    GEMINI_API_KEY: Optional[str] = Field(None, description="API Key for Google Gemini")
    GEMINI_MODEL: str = Field("gemini-1.5-flash-latest", description="Gemini model name")
    INTENT_TIMEOUT_SECONDS: float = Field(8.0, gt=0, description="Deadline for one intent request")

    # --- Sync serialization ---
    SYNC_LOCK_BACKEND: str = Field("memory", description="Per-owner sync lock ('memory', 'redis')")
    REDIS_URL: Optional[str] = Field(None, description="Redis URL for the 'redis' lock backend")
    SYNC_LOCK_TIMEOUT_SECONDS: float = Field(30.0, gt=0, description="Max hold time of a sync lock")

    # --- Chat ---
    CHAT_MAX_MESSAGE_LENGTH: int = Field(10000, gt=0, description="Max chat message length")

    @model_validator(mode="after")
    def check_lock_backend(self) -> "Settings":
        backend = self.SYNC_LOCK_BACKEND.lower()
        if backend not in _LOCK_BACKENDS:
            raise ValueError(f"Unknown SYNC_LOCK_BACKEND: {self.SYNC_LOCK_BACKEND}")
        if backend == "redis" and not self.REDIS_URL:
            raise ValueError("REDIS_URL must be set when SYNC_LOCK_BACKEND=redis")
        self.SYNC_LOCK_BACKEND = backend
        return self


# --- Singleton instance ---
try:
    settings = Settings()
    log.info("Settings loaded successfully for ENVIRONMENT=%s", settings.ENVIRONMENT)
    log.debug(
        "Loaded settings: DB URL=%s..., LLM Provider=%s, Sync lock=%s",
        str(settings.DATABASE_URL)[:25],
        settings.LLM_PROVIDER,
        settings.SYNC_LOCK_BACKEND,
    )
except Exception:
    log.exception("Failed to instantiate Settings.")
    raise
