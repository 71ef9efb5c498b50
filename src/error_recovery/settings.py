"""
Recovery subsystem settings

Values are read from ``RECOVERY_*`` environment variables or a ``.env`` file,
falling back to the defaults below.
"""

import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RecoverySettings(BaseSettings):
    """Defaults for the recovery manager, its ledger and new circuit breakers"""

    model_config = SettingsConfigDict(
        env_prefix="RECOVERY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    ledger_capacity: int = Field(default=1000, ge=1)
    default_strategy: str = "exponential-backoff"
    default_error_log_limit: int = Field(default=50, ge=0)

    breaker_failure_threshold: int = Field(default=5, ge=1)
    breaker_success_threshold: int = Field(default=2, ge=1)
    breaker_cooldown_ms: float = Field(default=60000, ge=0)

    log_level: str = "INFO"

    def breaker_defaults(self) -> dict:
        """Options applied to breakers created without explicit values"""
        return {
            "failure_threshold": self.breaker_failure_threshold,
            "success_threshold": self.breaker_success_threshold,
            "cooldown_ms": self.breaker_cooldown_ms,
        }


def configure_logging(settings: RecoverySettings) -> None:
    """Apply the configured log level to the root logger"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
