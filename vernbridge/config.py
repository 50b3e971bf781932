from decimal import Decimal
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


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
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Source chain (Bitcoin)
    source_network: str = Field(
        default="mainnet",
        pattern="^(mainnet|testnet)$",
        description="Bitcoin network whose address families are accepted",
    )
    source_decimals: int = Field(default=8, ge=0, le=18, description="Decimals of the source chain base unit")

    # Target chain (Starknet)
    target_decimals: int = Field(default=8, ge=0, le=36, description="Decimals of the bridged token on the target chain")
    bridge_contract_address: str = Field(
        default="0x012402f9a1612d3d48bfc7beb93f756e9848f67e3a0a8c1a23d48f03a25acc9e",
        description="Bridge contract invoked for deposits and withdrawals",
    )

    # Amount bounds (source-chain units)
    min_amount: Decimal = Field(default=Decimal("0.001"), gt=0, description="Minimum bridgeable amount")
    max_amount: Decimal = Field(default=Decimal("10"), gt=0, description="Maximum bridgeable amount")

    # Execution
    execution_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for a single signer submission",
    )
    max_retries: int = Field(default=3, ge=1, description="Maximum execution attempts per transaction")
    retry_backoff_seconds: float = Field(default=3.0, ge=0, description="Delay before the first retry")
    retry_backoff_multiplier: float = Field(default=2.0, ge=1, description="Exponential backoff base")
    retry_backoff_max_seconds: float = Field(default=30.0, ge=0, description="Upper bound for a retry delay")

    # Signer service
    signer_url: str = Field(default="http://127.0.0.1:8545", description="JSON-RPC endpoint of the signer service")
    signer_request_timeout_seconds: float = Field(
        default=130.0,
        gt=0,
        description="HTTP timeout of the signer client (kept above the execution timeout)",
    )

    # Confirmations
    confirmation_threshold: int = Field(default=6, ge=1, description="Source-chain confirmations required")
    deposit_confirmation_timeout_seconds: float = Field(
        default=86400.0,
        gt=0,
        description="Deadline for a deposit to reach the confirmation threshold (24h)",
    )
    withdrawal_confirmation_timeout_seconds: float = Field(
        default=259200.0,
        gt=0,
        description="Deadline for a withdrawal to reach the confirmation threshold (72h)",
    )
    max_buffered_confirmations: int = Field(
        default=1024,
        ge=1,
        description="Confirmations for not yet recorded chain references kept until they match",
    )
    buffered_confirmation_ttl_seconds: float = Field(
        default=3600.0,
        gt=0,
        description="How long a buffered confirmation waits for its chain reference",
    )

    # Notifications
    observer_queue_size: int = Field(
        default=256,
        ge=1,
        description="Pending messages an observer may hold before it is disconnected",
    )

    @model_validator(mode="after")
    def _check_amount_bounds(self) -> "Settings":
        if self.min_amount > self.max_amount:
            raise ValueError("min_amount must not exceed max_amount")
        return self


# Global settings instance
settings = Settings()
