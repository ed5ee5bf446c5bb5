from pathlib import Path
from typing import Any

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.execution.executor import ExecutorConfig
from .core.recovery.strategies import RetryPolicy


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=3030, ge=1, le=65535, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Solana ledger
    solana_rpc_url: str = Field(
        default="https://api.devnet.solana.com",
        description="JSON-RPC endpoint used to submit and confirm transfers",
        validation_alias=AliasChoices("solana_rpc_url", "SOLANA_RPC_URL", "RPC_URL"),
    )
    solana_commitment: str = Field(
        default="confirmed",
        description="Commitment level required before a transfer counts as confirmed",
    )
    ledger_call_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for any single ledger call",
    )

    # Submission retries
    submit_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total submission attempts for transient ledger failures",
    )
    submit_base_delay_seconds: float = Field(default=0.5, ge=0, description="First retry delay")
    submit_max_delay_seconds: float = Field(default=8.0, ge=0, description="Retry delay ceiling")

    # Confirmation polling
    confirmation_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Overall budget for waiting on a submitted transfer",
    )
    confirmation_poll_interval_seconds: float = Field(default=0.5, gt=0, description="Initial poll interval")
    confirmation_poll_max_interval_seconds: float = Field(default=5.0, gt=0, description="Poll interval ceiling")

    def model_post_init(self, __context: Any) -> None:
        super().model_post_init(__context)

        if self.confirmation_poll_max_interval_seconds < self.confirmation_poll_interval_seconds:
            object.__setattr__(
                self,
                "confirmation_poll_max_interval_seconds",
                self.confirmation_poll_interval_seconds,
            )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.submit_max_attempts,
            base_delay_seconds=self.submit_base_delay_seconds,
            max_delay_seconds=self.submit_max_delay_seconds,
        )

    def executor_config(self) -> ExecutorConfig:
        return ExecutorConfig(
            retry_policy=self.retry_policy(),
            call_timeout_seconds=self.ledger_call_timeout_seconds,
            confirmation_timeout_seconds=self.confirmation_timeout_seconds,
            poll_interval_seconds=self.confirmation_poll_interval_seconds,
            poll_max_interval_seconds=self.confirmation_poll_max_interval_seconds,
        )


# Global settings instance
settings = Settings()
