

# settings.py
from __future__ import annotations

from decimal import Decimal
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    ENV: str = "dev"

    # -----------------------
    # DB
    # -----------------------
    DATABASE_URL: str = ""
    STORE_BACKEND: Literal["postgres", "memory"] = "postgres"
    DB_POOL_MAX: int = 10
    DB_STATEMENT_TIMEOUT_MS: int = 5000

    # -----------------------
    # JWT (issued by the auth collaborator)
    # -----------------------
    JWT_SECRET: str = Field(default="dev-secret-change-me", min_length=16)
    JWT_ALG: str = Field(default="HS256")
    JWT_ACCESS_MINUTES: int = Field(default=60)

    # -----------------------
    # Pix gateway (Mode Switch)
    # -----------------------
    GATEWAY_MODE: Literal["sandbox", "real"] = "sandbox"
    PIX_API_BASE_URL: str = "https://api.eyowallet.ru/api/v1"
    PIX_API_KEY: str = ""
    PIX_HTTP_TIMEOUT_S: float = 20.0

    CHARGE_COVER_FEE: bool = False
    PAYOUT_COVER_FEE: bool = True
    PAYOUT_DESCRIPTION: str = "Repasse Nexus Market"

    # -----------------------
    # Fees
    # -----------------------
    PLATFORM_FEE_RATE: Decimal = Decimal("0.05")

    # -----------------------
    # Workers
    # -----------------------
    RECONCILE_BATCH_SIZE: int = 50
    RECONCILE_POLL_SECONDS: int = 5
    POLL_BASE_BACKOFF_SECONDS: int = 30
    POLL_MAX_BACKOFF_SECONDS: int = 900
    PAYOUT_MAX_ATTEMPTS: int = 5

    @field_validator("PLATFORM_FEE_RATE")
    @classmethod
    def _fee_rate_in_range(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 1:
            raise ValueError("PLATFORM_FEE_RATE must be in [0, 1)")
        return v


settings = Settings()


def validate_env_settings() -> None:
    """
    Fail fast outside dev when required configuration is missing.
    Dev/test runs are allowed to boot with defaults.
    """
    env = (settings.ENV or "dev").strip().lower()
    if env in ("dev", "test", "local"):
        return

    missing: list[str] = []
    if settings.STORE_BACKEND == "postgres" and not (settings.DATABASE_URL or "").strip():
        missing.append("DATABASE_URL")
    if settings.JWT_SECRET == "dev-secret-change-me":
        missing.append("JWT_SECRET")
    if settings.GATEWAY_MODE == "real":
        if not (settings.PIX_API_KEY or "").strip():
            missing.append("PIX_API_KEY")
        if not (settings.PIX_API_BASE_URL or "").strip():
            missing.append("PIX_API_BASE_URL")

    if missing:
        raise RuntimeError(
            f"Settings validation failed for ENV={env}. "
            "Missing required env vars: " + ", ".join(sorted(missing))
        )
