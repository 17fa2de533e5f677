"""Parameter types for authentication and sub-organization lookups."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class SubOrgFilterType(str, Enum):
    """Filters accepted by Turnkey's sub-organization lookup."""
    EMAIL = "EMAIL"
    PUBLIC_KEY = "PUBLIC_KEY"
    USERNAME = "USERNAME"
    OIDC_TOKEN = "OIDC_TOKEN"


class WalletType(str, Enum):
    """External wallet families that can authenticate with a public key."""
    ETHEREUM = "ethereum"
    SOLANA = "solana"


API_KEY_CURVES = {
    WalletType.ETHEREUM: "API_KEY_CURVE_SECP256K1",
    WalletType.SOLANA: "API_KEY_CURVE_ED25519",
}


@dataclass
class PasskeyParams:
    """WebAuthn registration result used as a Turnkey authenticator."""
    challenge: str
    attestation: dict[str, Any]
    authenticator_name: str = "Passkey"

    def to_authenticator(self) -> dict:
        return {
            "authenticatorName": self.authenticator_name,
            "challenge": self.challenge,
            "attestation": self.attestation,
        }


@dataclass
class OAuthProviderParams:
    """OIDC provider credential attached to a user."""
    provider_name: str
    oidc_token: str

    def to_oauth_provider(self) -> dict:
        return {"providerName": self.provider_name, "oidcToken": self.oidc_token}


@dataclass
class WalletAuthParams:
    """External wallet public key used as a user API key."""
    public_key: str
    type: WalletType = WalletType.ETHEREUM
    api_key_name: str = "Wallet Auth - Embedded Wallet"

    def to_api_key(self) -> dict:
        return {
            "apiKeyName": self.api_key_name,
            "publicKey": self.public_key,
            "curveType": API_KEY_CURVES[WalletType(self.type)],
        }


@dataclass
class LoginSession:
    """Session issued by an OAuth or OTP login."""
    user_id: Optional[str]
    session: str
    organization_id: str

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "session": self.session,
            "organizationId": self.organization_id,
        }
