"""Authentication and user management on top of Turnkey.

Each end user lives in their own Turnkey sub-organization, holding one
root user and a default HD wallet with a Stacks account. Logins (OAuth,
email OTP) exchange a credential plus a client-generated public key for a
Turnkey session scoped to that sub-organization.
"""

import logging
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import quote

import jwt

from stacks_turnkey.services.types import (
    LoginSession,
    OAuthProviderParams,
    PasskeyParams,
    SubOrgFilterType,
    WalletAuthParams,
)
from stacks_turnkey.stacks.c32 import public_key_to_address

if TYPE_CHECKING:
    from stacks_turnkey.sdk import StacksTurnkey

logger = logging.getLogger(__name__)

STACKS_DERIVATION_PATH = "m/44'/5'/0'/0/0"

STACKS_WALLET_ACCOUNT = {
    "curve": "CURVE_SECP256K1",
    "pathFormat": "PATH_FORMAT_BIP32",
    "path": STACKS_DERIVATION_PATH,
    "addressFormat": "ADDRESS_FORMAT_UNCOMPRESSED",
}


class AuthError(Exception):
    """Raised when an authentication flow cannot proceed."""
    pass


class AuthService:
    """User provisioning, login flows and account lookups."""

    def __init__(self, sdk: "StacksTurnkey"):
        self.sdk = sdk

    @property
    def turnkey(self):
        return self.sdk.get_client()

    def derive_stacks_address_from_turnkey_address(self, turnkey_wallet_address: str) -> str:
        """Derive a Stacks address from a Turnkey wallet public key."""
        return public_key_to_address(turnkey_wallet_address, self.sdk.get_network())

    @staticmethod
    def decode_jwt(credential: str) -> Optional[dict[str, Any]]:
        """Decode a JWT without verifying it.

        Returns:
            The claims if they include an email, otherwise None
        """
        try:
            decoded = jwt.decode(credential, options={"verify_signature": False})
        except jwt.InvalidTokenError as e:
            logger.warning(f"Could not decode JWT: {e}")
            return None

        if isinstance(decoded, dict) and "email" in decoded:
            return decoded
        return None

    async def create_user_sub_org(
        self,
        email: Optional[str] = None,
        passkey: Optional[PasskeyParams] = None,
        oauth: Optional[OAuthProviderParams] = None,
        wallet: Optional[WalletAuthParams] = None,
    ) -> dict:
        """Create a sub-organization with a root user and a default Stacks wallet.

        Args:
            email: User email
            passkey: Passkey attestation to register as authenticator
            oauth: OIDC provider to attach
            wallet: External wallet public key to register as API key

        Returns:
            {"subOrg": ..., "user": ...}

        Raises:
            AuthError: If Turnkey returns no root user
        """
        authenticators = [passkey.to_authenticator()] if passkey else []
        oauth_providers = [oauth.to_oauth_provider()] if oauth else []
        api_keys = [wallet.to_api_key()] if wallet else []

        # The OIDC token's email wins over the email parameter
        user_email = email
        if oauth:
            decoded = self.decode_jwt(oauth.oidc_token)
            if decoded and decoded.get("email"):
                user_email = decoded["email"]

        user_name = ""
        if user_email:
            user_name = user_email.split("@")[0] or user_email

        sub_org = await self.turnkey.create_sub_organization(
            sub_organization_name=f"Sub Org - {user_email}" if user_email else "Sub Org",
            root_users=[
                {
                    "userName": user_name,
                    "userEmail": user_email or "",
                    "oauthProviders": oauth_providers,
                    "authenticators": authenticators,
                    "apiKeys": api_keys,
                }
            ],
            root_quorum_threshold=1,
            wallet={
                "walletName": "Default Wallet",
                "accounts": [dict(STACKS_WALLET_ACCOUNT)],
            },
            organization_id=self.sdk.get_default_organization_id(),
        )

        root_user_ids = sub_org.get("rootUserIds") or []
        if not root_user_ids:
            raise AuthError("No root user ID found")

        response = await self.turnkey.get_user(sub_org["subOrganizationId"], root_user_ids[0])
        return {"subOrg": sub_org, "user": response.get("user")}

    async def oauth(self, credential: str, public_key: str, sub_org_id: str) -> dict:
        """Log in with an OIDC credential.

        Returns:
            {"userId", "session", "organizationId"}
        """
        response = await self.turnkey.oauth_login(
            oidc_token=credential,
            public_key=public_key,
            organization_id=sub_org_id,
        )
        return self._session_from(response, sub_org_id).to_dict()

    @staticmethod
    def get_magic_link_template(
        action: str, email: str, method: str, public_key: str, base_url: str
    ) -> str:
        """Build the magic link URL; Turnkey substitutes %s with the credential bundle."""
        return (
            f"{base_url}/email-{action}?userEmail={quote(email, safe='@')}"
            f"&continueWith={method}&publicKey={public_key}&credentialBundle=%s"
        )

    async def init_email_auth(
        self, email: str, target_public_key: str, base_url: Optional[str] = None
    ) -> dict:
        """Start email OTP authentication, creating the user's sub-org if needed.

        Returns:
            Turnkey init_otp result ({"otpId", "activity"})
        """
        organization_id = await self.get_sub_org_id_by_email(email)
        if not organization_id:
            created = await self.create_user_sub_org(email=email)
            organization_id = created["subOrg"]["subOrganizationId"]
            logger.info(f"Created sub-organization {organization_id} for email login")

        email_customization = {
            "appName": self.sdk.settings.otp_app_name,
            "logoUrl": self.sdk.settings.otp_logo_url,
        }
        if base_url:
            email_customization["magicLinkTemplate"] = self.get_magic_link_template(
                action="auth",
                email=email,
                method="email",
                public_key=target_public_key,
                base_url=base_url,
            )

        return await self.turnkey.init_otp(
            otp_type="OTP_TYPE_EMAIL",
            contact=email,
            user_identifier=target_public_key,
            email_customization=email_customization,
        )

    async def verify_otp(
        self, otp_id: str, otp_code: str, public_key: Optional[str] = None
    ) -> dict:
        """Verify an OTP code; returns {"verificationToken", "activity"}."""
        return await self.turnkey.verify_otp(otp_id=otp_id, otp_code=otp_code)

    async def otp_login(self, public_key: str, verification_token: str, email: str) -> dict:
        """Exchange an OTP verification token for a session.

        Raises:
            AuthError: If no sub-organization exists for the email
        """
        sub_org_id = await self.get_sub_org_id_by_email(email)
        if not sub_org_id:
            raise AuthError("Could not find suborg by email")

        response = await self.turnkey.otp_login(
            verification_token=verification_token,
            public_key=public_key,
            organization_id=sub_org_id,
        )
        return self._session_from(response, sub_org_id).to_dict()

    @staticmethod
    def _session_from(response: dict, organization_id: str) -> LoginSession:
        votes = (response.get("activity") or {}).get("votes") or []
        user_id = votes[0].get("userId") if votes else None
        return LoginSession(
            user_id=user_id,
            session=response.get("session", ""),
            organization_id=organization_id,
        )

    async def get_sub_org_id(
        self,
        email: Optional[str] = None,
        public_key: Optional[str] = None,
        username: Optional[str] = None,
        oidc_token: Optional[str] = None,
    ) -> Optional[str]:
        """Find the sub-organization of a user by exactly one identifier.

        Returns:
            The first matching sub-organization ID, or None

        Raises:
            AuthError: Unless exactly one identifier is given
        """
        filters = [
            (SubOrgFilterType.EMAIL, email),
            (SubOrgFilterType.PUBLIC_KEY, public_key),
            (SubOrgFilterType.USERNAME, username),
            (SubOrgFilterType.OIDC_TOKEN, oidc_token),
        ]
        given = [(kind, value) for kind, value in filters if value is not None]
        if len(given) != 1:
            raise AuthError("Invalid parameter: provide exactly one of email, "
                            "public_key, username or oidc_token")

        filter_type, filter_value = given[0]
        response = await self.turnkey.get_sub_org_ids(
            filter_type=filter_type.value,
            filter_value=filter_value,
            organization_id=self.sdk.get_default_organization_id(),
        )
        organization_ids = response.get("organizationIds") or []
        return organization_ids[0] if organization_ids else None

    async def get_sub_org_id_by_email(self, email: str) -> Optional[str]:
        return await self.get_sub_org_id(email=email)

    async def get_sub_org_id_by_public_key(self, public_key: str) -> Optional[str]:
        return await self.get_sub_org_id(public_key=public_key)

    async def get_sub_org_id_by_username(self, username: str) -> Optional[str]:
        return await self.get_sub_org_id(username=username)

    async def get_sub_org_id_by_oidc_token(self, oidc_token: str) -> Optional[str]:
        return await self.get_sub_org_id(oidc_token=oidc_token)

    async def get_user(self, user_id: str, sub_org_id: str) -> dict:
        return await self.turnkey.get_user(sub_org_id, user_id)

    async def get_wallet(self, wallet_id: str, sub_org_id: str) -> dict:
        """Get a wallet and its accounts, each annotated with its Stacks address.

        The account's Turnkey address (an uncompressed public key) is kept
        under "publicKey"; "address" becomes the Stacks address.
        """
        wallet_response = await self.turnkey.get_wallet(sub_org_id, wallet_id)
        accounts_response = await self.turnkey.get_wallet_accounts(sub_org_id, wallet_id)

        accounts = []
        for account in accounts_response.get("accounts", []):
            public_key = account.get("address", "")
            accounts.append({
                **account,
                "publicKey": public_key,
                "address": self.derive_stacks_address_from_turnkey_address(public_key),
            })

        return {"wallet": wallet_response.get("wallet"), "accounts": accounts}

    async def get_authenticators(self, user_id: str, sub_org_id: str) -> list:
        response = await self.turnkey.get_authenticators(sub_org_id, user_id)
        return response.get("authenticators", [])

    async def get_authenticator(self, authenticator_id: str, sub_org_id: str) -> Optional[dict]:
        response = await self.turnkey.get_authenticator(sub_org_id, authenticator_id)
        return response.get("authenticator")
