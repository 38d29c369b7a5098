"""
Configuration for credledger.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .verification import VerificationMode


class Settings(BaseSettings):
    """
    Service and client settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # API Server
    # WARNING: with host="0.0.0.0" set API_TOKEN and put the service behind a proxy.
    host: str = Field(default="127.0.0.1", description="API host", alias="HOST")
    port: int = Field(default=8000, description="API port", validation_alias="PORT")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Authentication
    api_token: Optional[str] = Field(
        default=None,
        description="If set, mutating endpoints also require X-API-Key",
    )
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://127.0.0.1:3000"],
        description="CORS allowed origins",
    )
    signature_ttl_seconds: int = Field(
        default=300,
        description="Maximum age of a signed operation request",
        alias="SIGNATURE_TTL_SECONDS",
    )

    # Registry
    registry_owner: Optional[str] = Field(
        default=None,
        description="Owner address of the in-process registry (seeded as issuer)",
        alias="REGISTRY_OWNER",
    )
    verification_mode: VerificationMode = Field(
        default=VerificationMode.HISTORICAL,
        description="historical: trust issuer authorization at issuance; "
        "live: also require the issuer to be authorized now",
        alias="VERIFICATION_MODE",
    )

    # Read index
    index_database_url: Optional[str] = Field(
        default="sqlite:///./credledger-index.db",
        description="SQLAlchemy URL of the read index (empty disables it)",
        alias="INDEX_DATABASE_URL",
    )

    # EVM
    evm_rpc_url: str = Field(default="http://localhost:8545", description="EVM RPC URL")
    chain_id: int = Field(default=11155111, description="EVM chain ID (Sepolia)")
    private_key: Optional[str] = Field(
        default=None,
        description="Private key used by the CLI to sign transactions",
    )
    registry_contract: Optional[str] = Field(
        default=None,
        description="IdentityRegistry contract address",
        alias="REGISTRY_CONTRACT",
    )
    receipt_timeout_seconds: float = Field(
        default=120.0,
        description="How long to wait for a transaction receipt",
    )

    # Metadata
    metadata_gateway_url: str = Field(
        default="https://gateway.pinata.cloud/ipfs",
        description="IPFS gateway used to fetch credential metadata",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
