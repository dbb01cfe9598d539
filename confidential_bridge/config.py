import os

from pathlib import Path
from typing import Any, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=BASE_DIR / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def model_post_init(self, __context: Any) -> None:
        """Pick up the signer key from the variable names used by deployment tooling."""

        super().model_post_init(__context)

        if not self.signer_private_key:
            fallback = os.getenv("PRIVATE_KEY") or os.getenv("DEPLOYER_PRIVATE_KEY")
            if fallback:
                object.__setattr__(self, "signer_private_key", fallback)

    # Server Settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Ledger (JSON-RPC)
    rpc_url: str = Field(default="http://127.0.0.1:8545", description="EVM JSON-RPC endpoint")
    chain_id: int = Field(default=11155111, description="Chain ID of the ledger network")
    signer_private_key: str = Field(
        default="",
        description="Hex private key of the account that signs transactions and authorizations",
    )
    max_priority_fee_gwei: Optional[float] = Field(
        default=None,
        description="Cap on the EIP-1559 priority fee",
    )
    gas_multiplier: float = Field(default=1.2, gt=1.0, description="Safety margin on estimated gas")

    # Encryption / decryption oracle service
    relayer_url: str = Field(
        default="https://relayer.testnet.zama.cloud",
        description="Base URL of the relayer that serves input proofs and user decryption",
    )
    decryption_domain_name: str = Field(default="Decryption", description="EIP-712 domain name")
    decryption_domain_version: str = Field(default="1", description="EIP-712 domain version")
    decryption_domain_chain_id: int = Field(
        default=55815,
        description="Chain ID of the gateway chain that verifies user decryption requests",
    )
    decryption_verifying_contract: str = Field(
        default="0xb6E160B1ff80D67Bfe90A85eE06Ce0A2613607D1",
        description="Verifying contract of the user decryption EIP-712 domain",
    )
    ciphertext_bit_width: int = Field(
        default=64,
        ge=8,
        le=256,
        description="Bit width of the encrypted integer type used for confidential amounts",
    )
    authorization_duration_days: int = Field(
        default=7,
        ge=1,
        le=365,
        description="Validity window of a signed decryption authorization",
    )

    # Assets
    assets_file: str = Field(
        default="",
        description="Optional YAML file overriding the built-in asset registry",
    )

    # Timeouts (seconds)
    confirmation_timeout_seconds: float = Field(default=300.0, gt=0, description="Transaction confirmation timeout")
    receipt_poll_interval_seconds: float = Field(default=2.0, gt=0, description="Receipt polling interval")
    encryption_timeout_seconds: float = Field(default=60.0, gt=0, description="Encrypted input build timeout")
    encryption_init_timeout_seconds: float = Field(default=30.0, gt=0, description="Encryption service readiness timeout")
    signer_timeout_seconds: float = Field(default=120.0, gt=0, description="Time allowed for the holder to sign")
    oracle_timeout_seconds: float = Field(default=120.0, gt=0, description="User decryption round-trip timeout")
    settlement_timeout_seconds: float = Field(default=180.0, gt=0, description="Unwrap fulfilment timeout")
    rpc_timeout_seconds: float = Field(default=30.0, gt=0, description="Single JSON-RPC request timeout")

    # Sessions
    balance_cache_ttl_seconds: int = Field(default=30, ge=1, description="Balance snapshot TTL")
    reject_busy_sessions: bool = Field(
        default=False,
        description="Reject new actions while a session is busy instead of queueing them",
    )

    # Feature Flags
    use_mock_backends: bool = Field(
        default=False,
        description="Use the in-process ledger and encryption service instead of RPC and relayer",
    )

    @property
    def amount_ceiling(self) -> int:
        """Largest amount representable by the confidential integer type."""
        return 2 ** self.ciphertext_bit_width - 1

    @property
    def has_signer_key(self) -> bool:
        return bool(self.signer_private_key)


# Global settings instance
settings = Settings()
