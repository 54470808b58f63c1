"""
Application configuration — single source of truth.

All environment variables are defined in the root .env file.
This module loads them via pydantic-settings and exposes a singleton `settings`.
"""

import logging
from decimal import Decimal
from pathlib import Path
from pydantic_settings import BaseSettings
from pydantic import Field, model_validator

_config_logger = logging.getLogger("backoffice.config")

# Resolve paths relative to repo root (two levels up from this file)
_REPO_ROOT = Path(__file__).resolve().parent.parent.parent  # backend/app/config.py → repo root
_ENV_FILE = _REPO_ROOT / ".env"


class Settings(BaseSettings):
    # ── General ──────────────────────────────────────────────
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # ── CORS ─────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:5173,http://localhost:3000")

    # ── Ledger backend (loans, balances, batch processing) ──
    ledger_provider: str = Field(default="mock")
    ledger_api_url: str = Field(default="")
    ledger_api_token: str = Field(default="")
    ledger_api_timeout_seconds: float = Field(default=15.0, gt=0)

    # ── Candidate queries ────────────────────────────────────
    payroll_agreement_query_limit: int = Field(default=500, ge=1)
    payroll_open_query_limit: int = Field(default=2000, ge=1)
    refinancing_query_limit: int = Field(default=200, ge=1)

    # ── Reconciliation ───────────────────────────────────────
    amount_tolerance: Decimal = Field(
        default=Decimal("0.01"),
        description="Largest absolute difference still considered balanced",
    )

    # ── Uploads / monitoring ─────────────────────────────────
    max_upload_size_mb: int = Field(default=5)
    error_log_buffer_size: int = Field(default=500, ge=1)

    @model_validator(mode="after")
    def _check_ledger_provider(self) -> "Settings":
        """The HTTP provider is useless without a base URL; outside development
        that is a hard configuration error, in development we fall back to mock."""
        provider = self.ledger_provider.lower()
        if provider == "http" and not self.ledger_api_url:
            if self.environment != "development":
                raise ValueError(
                    "LEDGER_API_URL must be set when LEDGER_PROVIDER=http outside development"
                )
            _config_logger.warning(
                "LEDGER_PROVIDER=http without LEDGER_API_URL, using the mock ledger instead"
            )
            self.ledger_provider = "mock"
        return self

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    model_config = {
        "env_file": str(_ENV_FILE),
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()
