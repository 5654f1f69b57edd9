"""
Configuration management for the EOA Batcher.

Supports configuration via environment variables and .env files.
"""

from enum import IntEnum
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_IMPLEMENTATION = "0x000100abaad02f1cfc8bbe32bd5a564817339e72"


class ChainId(IntEnum):
    """Chains the batch-execution implementation is known to be deployed on."""
    BASE_MAINNET = 8453
    BASE_SEPOLIA = 84532


class BatcherConfig(BaseSettings):
    """
    Configuration settings for the EOA Batcher.

    Settings are read from unprefixed environment variables
    (PRIVATE_KEY, RPC_URL, SMART_ACCOUNT_IMPLEMENTATION, CHAIN_ID, ...).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Network settings
    rpc_url: Optional[str] = Field(
        default=None,
        description="JSON-RPC endpoint of the chain"
    )
    chain_id: int = Field(
        default=int(ChainId.BASE_SEPOLIA),
        ge=0,
        description="Chain ID the authorization and transactions are bound to"
    )
    rpc_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="HTTP timeout for a single JSON-RPC request"
    )

    # Account settings
    private_key: Optional[str] = Field(
        default=None,
        description="Hex-encoded private key of the EOA to delegate"
    )
    smart_account_implementation: str = Field(
        default=DEFAULT_IMPLEMENTATION,
        description="Batch-execution implementation the EOA delegates to"
    )

    # Gas limits
    delegation_gas_limit: int = Field(
        default=100_000,
        ge=21_000,
        description="Gas limit of the set-code (delegation) transaction"
    )
    batch_gas_limit: int = Field(
        default=1_000_000,
        ge=21_000,
        description="Gas limit of the executeBatch transaction"
    )
    approval_gas_limit: int = Field(
        default=100_000,
        ge=21_000,
        description="Gas limit of an ERC-20 approve transaction"
    )

    # Receipt polling
    receipt_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Maximum time to wait for a transaction receipt"
    )
    receipt_poll_interval_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Delay between receipt polls"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )


# Global config instance
_config: Optional[BatcherConfig] = None


def get_config() -> BatcherConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = BatcherConfig()
    return _config


def set_config(config: BatcherConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
