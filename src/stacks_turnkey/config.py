"""SDK configuration using pydantic-settings.

Turnkey API credentials, the Stacks network and the Hiro API endpoints are
read from environment variables (or a .env file).
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

Network = Literal["mainnet", "testnet"]


class Settings(BaseSettings):
    """SDK settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # SDK identity
    # ======================
    name: Optional[str] = Field(default=None, description="Display name of the embedding app")
    description: Optional[str] = Field(default=None, description="Display description")

    # ======================
    # Network
    # ======================
    network: Network = Field(default="testnet", description="Stacks network")
    debug: bool = Field(default=False, description="Enable debug logging")

    # ======================
    # Turnkey
    # ======================
    turnkey_api_base_url: str = Field(
        default="https://api.turnkey.com", description="Turnkey API base URL"
    )
    turnkey_api_public_key: str = Field(default="", description="Turnkey API public key (hex)")
    turnkey_api_private_key: str = Field(default="", description="Turnkey API private key (hex)")
    turnkey_organization_id: str = Field(default="", description="Parent organization ID")
    activity_poll_interval: float = Field(
        default=1.0, description="Seconds between activity status polls"
    )
    activity_poll_attempts: int = Field(
        default=10, description="Maximum activity status polls before giving up"
    )

    # ======================
    # Stacks / Hiro endpoints
    # ======================
    hiro_mainnet_url: str = Field(
        default="https://api.mainnet.hiro.so", description="Hiro API URL for mainnet"
    )
    hiro_testnet_url: str = Field(
        default="https://api.testnet.hiro.so", description="Hiro API URL for testnet"
    )
    http_timeout: float = Field(default=30.0, description="HTTP timeout in seconds")

    # ======================
    # Transfers
    # ======================
    auto_adjust_amount: bool = Field(
        default=True,
        description="Reduce the transfer amount when balance cannot cover amount + fee",
    )
    sbtc_mainnet_contract: str = Field(
        default="SM3VDXK3WZZSA84XXFKAFAF15NNZX32CTSG82JFQ4.sbtc-token",
        description="sBTC token contract on mainnet",
    )
    sbtc_testnet_contract: str = Field(
        default="ST1F7QA2MDF17S807EPA36TSS8AMEFY4KA9TVGWXT.sbtc-token",
        description="sBTC token contract on testnet",
    )

    # ======================
    # Signing
    # ======================
    signer_backend: Literal["turnkey", "local"] = Field(
        default="turnkey", description="Signing backend"
    )
    local_signer_private_key: Optional[str] = Field(
        default=None, description="secp256k1 private key (hex) for the local signer"
    )

    # ======================
    # Email OTP
    # ======================
    otp_app_name: str = Field(default="Stacks Embed", description="App name in OTP emails")
    otp_logo_url: str = Field(
        default="https://turnkey.com/logo.png", description="Logo URL in OTP emails"
    )

    @property
    def is_mainnet(self) -> bool:
        """Check if configured for mainnet."""
        return self.network == "mainnet"

    @property
    def hiro_api_url(self) -> str:
        """Hiro API URL for the configured network."""
        return self.hiro_mainnet_url if self.is_mainnet else self.hiro_testnet_url

    def sbtc_contract(self, network: Optional[str] = None) -> str:
        """sBTC token contract identifier (ADDRESS.name) for a network."""
        network = network or self.network
        return self.sbtc_mainnet_contract if network == "mainnet" else self.sbtc_testnet_contract

    @property
    def has_turnkey_credentials(self) -> bool:
        """Check if Turnkey API credentials are configured."""
        return bool(
            self.turnkey_api_public_key
            and self.turnkey_api_private_key
            and self.turnkey_organization_id
        )

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "name": self.name,
            "network": self.network,
            "debug": self.debug,
            "turnkey": {
                "base_url": self.turnkey_api_base_url,
                "organization_id": self.turnkey_organization_id or "(not set)",
                "public_key": self.turnkey_api_public_key or "(not set)",
                "private_key": "***" if self.turnkey_api_private_key else "(not set)",
            },
            "hiro_api_url": self.hiro_api_url,
            "signer_backend": self.signer_backend,
            "local_signer_key": "***" if self.local_signer_private_key else "(not set)",
            "auto_adjust_amount": self.auto_adjust_amount,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
