"""Configuration module using Pydantic Settings."""

import math
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Durable state service
    enable_state_worker: bool = False
    state_worker_url: str | None = None
    state_worker_api_key: str | None = None

    # HTTP Client
    http_timeout_connect: float = 10.0
    http_timeout_read: float = 30.0

    # Runtime environment (drives caller identity fallbacks)
    environment: Literal["development", "production", "test"] = "development"

    # Logging
    log_level: str = "INFO"

    # Chat token quota
    chat_quota_enabled: bool = False
    chat_quota_tokens: int = Field(default=20_000, gt=0)
    chat_quota_window_sec: int = Field(default=86_400, gt=0)

    # Crypto spend quota (ETH; 0 = no cap for that window)
    crypto_quota_enabled: bool = False
    crypto_quota_daily_limit_eth: float = 0.0
    crypto_quota_user_limit_eth: float = 0.0
    crypto_quota_duration_sec: int = Field(default=86_400, gt=0)

    # Chain
    active_chain_id: int | None = None
    local_chain_id: int = 90_999_999

    @field_validator("crypto_quota_daily_limit_eth", "crypto_quota_user_limit_eth")
    @classmethod
    def _validate_eth_limit(cls, value: float) -> float:
        if not math.isfinite(value) or value < 0:
            raise ValueError("crypto quota limits must be finite and >= 0 (0 = no cap)")
        return value

    @model_validator(mode="after")
    def _validate_consistency(self) -> "Settings":
        if self.enable_state_worker:
            missing = [
                name
                for name, value in (
                    ("STATE_WORKER_URL", self.state_worker_url),
                    ("STATE_WORKER_API_KEY", self.state_worker_api_key),
                )
                if not value
            ]
            if missing:
                raise ValueError(
                    f"{', '.join(missing)} required when ENABLE_STATE_WORKER is true"
                )

        # Enabled with both caps at 0 caps nothing.
        if (
            self.crypto_quota_enabled
            and self.crypto_quota_daily_limit_eth == 0
            and self.crypto_quota_user_limit_eth == 0
        ):
            raise ValueError(
                "CRYPTO_QUOTA_ENABLED is true but both crypto limits are 0 (uncapped); "
                "set a daily or per-user limit, or disable the crypto quota"
            )
        return self

    @property
    def state_service_active(self) -> bool:
        """Whether the durable state service is enabled and fully configured."""
        return bool(
            self.enable_state_worker
            and self.state_worker_url
            and self.state_worker_api_key
        )

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
