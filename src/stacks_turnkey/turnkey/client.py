"""Turnkey API client.

Every request is authenticated with an X-Stamp header:
    base64url(json({"publicKey": ..., "scheme": "SIGNATURE_SCHEME_TK_API_P256",
                    "signature": DER-hex ECDSA-P256/SHA256(body)}))

Writes are submitted as activities (/public/v1/submit/*). An activity may
finish synchronously or stay pending; pending activities are polled via
get_activity until they reach a terminal status.

Reference:
- https://docs.turnkey.com/api-reference/overview
"""

import asyncio
import base64
import json
import logging
import time
from typing import Any, Optional

import httpx
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

logger = logging.getLogger(__name__)

TURNKEY_BASE_URL = "https://api.turnkey.com"
STAMP_SCHEME = "SIGNATURE_SCHEME_TK_API_P256"

ACTIVITY_STATUS_COMPLETED = "ACTIVITY_STATUS_COMPLETED"
ACTIVITY_STATUS_FAILED = "ACTIVITY_STATUS_FAILED"
ACTIVITY_STATUS_REJECTED = "ACTIVITY_STATUS_REJECTED"
ACTIVITY_STATUS_CONSENSUS_NEEDED = "ACTIVITY_STATUS_CONSENSUS_NEEDED"
TERMINAL_FAILURE_STATUSES = (
    ACTIVITY_STATUS_FAILED,
    ACTIVITY_STATUS_REJECTED,
    ACTIVITY_STATUS_CONSENSUS_NEEDED,
)


class TurnkeyError(Exception):
    """Base exception for Turnkey errors."""
    pass


class TurnkeyAPIError(TurnkeyError):
    """Turnkey returned a non-2xx response."""

    def __init__(self, path: str, status_code: int, body: str):
        self.path = path
        self.status_code = status_code
        self.body = body
        super().__init__(f"Turnkey API error on {path}: HTTP {status_code} - {body}")


class ActivityFailedError(TurnkeyError):
    """Activity reached a failed, rejected or consensus-needed status."""

    def __init__(self, activity: dict):
        self.activity = activity
        self.activity_id = activity.get("id")
        self.status = activity.get("status")
        failure = activity.get("failure") or {}
        message = failure.get("message") if isinstance(failure, dict) else str(failure)
        super().__init__(
            f"Activity {self.activity_id} ended with {self.status}"
            + (f": {message}" if message else "")
        )


class ActivityTimeoutError(TurnkeyError):
    """Activity did not complete within the allowed number of polls."""

    def __init__(self, activity: dict, attempts: int):
        self.activity = activity
        self.activity_id = activity.get("id")
        self.status = activity.get("status")
        super().__init__(
            f"Activity {self.activity_id} still {self.status} after {attempts} polls"
        )


def _timestamp_ms() -> str:
    return str(int(time.time() * 1000))


class TurnkeyClient:
    """Async HTTP client for the Turnkey API with P-256 stamp authentication."""

    def __init__(
        self,
        api_public_key: str,
        api_private_key: str,
        organization_id: str,
        base_url: str = TURNKEY_BASE_URL,
        timeout: float = 30.0,
        poll_interval: float = 1.0,
        poll_attempts: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Turnkey client.

        Args:
            api_public_key: Compressed P-256 API public key (hex)
            api_private_key: P-256 API private key (hex)
            organization_id: Parent organization ID
            base_url: Turnkey API base URL
            timeout: HTTP timeout in seconds
            poll_interval: Seconds between activity polls
            poll_attempts: Maximum activity polls
            transport: Optional httpx transport (used by tests)
        """
        self.api_public_key = api_public_key
        self.organization_id = organization_id
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self._signing_key = self._load_signing_key(api_private_key)
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    @staticmethod
    def _load_signing_key(api_private_key: str) -> ec.EllipticCurvePrivateKey:
        if not api_private_key:
            raise TurnkeyError("Turnkey API private key is not configured")
        try:
            private_value = int(api_private_key.removeprefix("0x"), 16)
        except ValueError as e:
            raise TurnkeyError("Turnkey API private key is not valid hex") from e
        return ec.derive_private_key(private_value, ec.SECP256R1())

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def create_stamp(self, body: str) -> str:
        """Stamp a serialized request body."""
        signature = self._signing_key.sign(body.encode(), ec.ECDSA(hashes.SHA256()))
        stamp = {
            "publicKey": self.api_public_key,
            "scheme": STAMP_SCHEME,
            "signature": signature.hex(),
        }
        return base64.urlsafe_b64encode(json.dumps(stamp).encode()).decode().rstrip("=")

    # ------------------------------------------------------------------
    # Low-level HTTP
    # ------------------------------------------------------------------

    async def post(self, path: str, body: dict) -> dict:
        """Send an authenticated POST request."""
        body_json = json.dumps(body, separators=(",", ":"))
        headers = {"X-Stamp": self.create_stamp(body_json)}

        try:
            response = await self._client.post(path, content=body_json, headers=headers)
        except httpx.HTTPError as e:
            raise TurnkeyError(f"Turnkey request to {path} failed: {e}") from e

        if response.is_error:
            raise TurnkeyAPIError(path, response.status_code, response.text)
        return response.json()

    async def submit_activity(
        self,
        path: str,
        activity_type: str,
        parameters: dict,
        result_key: str,
        organization_id: Optional[str] = None,
    ) -> dict:
        """Submit an activity and wait for its result.

        Returns:
            The activity's result body, with the activity itself under "activity"
        """
        body = {
            "type": activity_type,
            "timestampMs": _timestamp_ms(),
            "organizationId": organization_id or self.organization_id,
            "parameters": parameters,
        }
        response = await self.post(path, body)
        activity = await self._wait_for_activity(response.get("activity", {}))

        result = dict((activity.get("result") or {}).get(result_key) or {})
        result["activity"] = activity
        return result

    async def _wait_for_activity(self, activity: dict) -> dict:
        for attempt in range(self.poll_attempts + 1):
            status = activity.get("status")
            if status == ACTIVITY_STATUS_COMPLETED:
                return activity
            if status in TERMINAL_FAILURE_STATUSES:
                raise ActivityFailedError(activity)
            if attempt == self.poll_attempts:
                break
            if not activity.get("id"):
                raise TurnkeyError(f"Activity in status {status} has no id to poll")

            logger.debug(f"Activity {activity.get('id')} is {status}, polling again")
            await asyncio.sleep(self.poll_interval)
            activity = await self.get_activity(
                activity["id"], organization_id=activity.get("organizationId")
            )

        raise ActivityTimeoutError(activity, self.poll_attempts)

    # ------------------------------------------------------------------
    # Activities
    # ------------------------------------------------------------------

    async def create_sub_organization(
        self,
        sub_organization_name: str,
        root_users: list[dict],
        root_quorum_threshold: int = 1,
        wallet: Optional[dict] = None,
        organization_id: Optional[str] = None,
    ) -> dict:
        """Create a sub-organization under the parent organization."""
        parameters: dict[str, Any] = {
            "subOrganizationName": sub_organization_name,
            "rootUsers": root_users,
            "rootQuorumThreshold": root_quorum_threshold,
        }
        if wallet is not None:
            parameters["wallet"] = wallet

        result = await self.submit_activity(
            "/public/v1/submit/create_sub_organization",
            "ACTIVITY_TYPE_CREATE_SUB_ORGANIZATION_V7",
            parameters,
            "createSubOrganizationResultV7",
            organization_id,
        )
        logger.info(f"Turnkey sub-organization created: {result.get('subOrganizationId')}")
        return result

    async def create_private_keys(self, organization_id: str, private_keys: list[dict]) -> dict:
        """Create private keys inside an organization."""
        return await self.submit_activity(
            "/public/v1/submit/create_private_keys",
            "ACTIVITY_TYPE_CREATE_PRIVATE_KEYS_V2",
            {"privateKeys": private_keys},
            "createPrivateKeysResultV2",
            organization_id,
        )

    async def create_wallet(
        self, organization_id: str, wallet_name: str, accounts: list[dict]
    ) -> dict:
        """Create an HD wallet with the given accounts."""
        result = await self.submit_activity(
            "/public/v1/submit/create_wallet",
            "ACTIVITY_TYPE_CREATE_WALLET",
            {"walletName": wallet_name, "accounts": accounts},
            "createWalletResult",
            organization_id,
        )
        logger.info(f"Turnkey wallet created: {result.get('walletId', 'unknown')}")
        return result

    async def sign_raw_payload(
        self,
        sign_with: str,
        payload: str,
        encoding: str = "PAYLOAD_ENCODING_HEXADECIMAL",
        hash_function: str = "HASH_FUNCTION_NO_OP",
        organization_id: Optional[str] = None,
    ) -> dict:
        """Sign a raw payload; returns {"r", "s", "v", "activity"}."""
        return await self.submit_activity(
            "/public/v1/submit/sign_raw_payload",
            "ACTIVITY_TYPE_SIGN_RAW_PAYLOAD_V2",
            {
                "signWith": sign_with,
                "payload": payload,
                "encoding": encoding,
                "hashFunction": hash_function,
            },
            "signRawPayloadResult",
            organization_id,
        )

    async def oauth_login(
        self, oidc_token: str, public_key: str, organization_id: str,
        expiration_seconds: Optional[str] = None,
    ) -> dict:
        """Log in with an OIDC token; returns {"session", "activity"}."""
        parameters = {"oidcToken": oidc_token, "publicKey": public_key}
        if expiration_seconds:
            parameters["expirationSeconds"] = expiration_seconds
        return await self.submit_activity(
            "/public/v1/submit/oauth_login",
            "ACTIVITY_TYPE_OAUTH_LOGIN",
            parameters,
            "oauthLoginResult",
            organization_id,
        )

    async def init_otp(
        self,
        otp_type: str,
        contact: str,
        user_identifier: Optional[str] = None,
        email_customization: Optional[dict] = None,
        organization_id: Optional[str] = None,
    ) -> dict:
        """Start an OTP flow; returns {"otpId", "activity"}."""
        parameters: dict[str, Any] = {"otpType": otp_type, "contact": contact}
        if user_identifier:
            parameters["userIdentifier"] = user_identifier
        if email_customization:
            parameters["emailCustomization"] = email_customization
        return await self.submit_activity(
            "/public/v1/submit/init_otp",
            "ACTIVITY_TYPE_INIT_OTP",
            parameters,
            "initOtpResult",
            organization_id,
        )

    async def verify_otp(
        self, otp_id: str, otp_code: str, organization_id: Optional[str] = None
    ) -> dict:
        """Verify an OTP code; returns {"verificationToken", "activity"}."""
        return await self.submit_activity(
            "/public/v1/submit/verify_otp",
            "ACTIVITY_TYPE_VERIFY_OTP",
            {"otpId": otp_id, "otpCode": otp_code},
            "verifyOtpResult",
            organization_id,
        )

    async def otp_login(
        self, verification_token: str, public_key: str, organization_id: str
    ) -> dict:
        """Exchange a verification token for a session; returns {"session", "activity"}."""
        return await self.submit_activity(
            "/public/v1/submit/otp_login",
            "ACTIVITY_TYPE_OTP_LOGIN",
            {"verificationToken": verification_token, "publicKey": public_key},
            "otpLoginResult",
            organization_id,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_activity(self, activity_id: str, organization_id: Optional[str] = None) -> dict:
        data = await self.post(
            "/public/v1/query/get_activity",
            {"organizationId": organization_id or self.organization_id, "activityId": activity_id},
        )
        return data.get("activity", {})

    async def get_user(self, organization_id: str, user_id: str) -> dict:
        return await self.post(
            "/public/v1/query/get_user",
            {"organizationId": organization_id, "userId": user_id},
        )

    async def get_wallet(self, organization_id: str, wallet_id: str) -> dict:
        return await self.post(
            "/public/v1/query/get_wallet",
            {"organizationId": organization_id, "walletId": wallet_id},
        )

    async def get_wallet_accounts(self, organization_id: str, wallet_id: str) -> dict:
        return await self.post(
            "/public/v1/query/list_wallet_accounts",
            {"organizationId": organization_id, "walletId": wallet_id},
        )

    async def get_authenticators(self, organization_id: str, user_id: str) -> dict:
        return await self.post(
            "/public/v1/query/get_authenticators",
            {"organizationId": organization_id, "userId": user_id},
        )

    async def get_authenticator(self, organization_id: str, authenticator_id: str) -> dict:
        return await self.post(
            "/public/v1/query/get_authenticator",
            {"organizationId": organization_id, "authenticatorId": authenticator_id},
        )

    async def get_sub_org_ids(
        self, filter_type: str, filter_value: str, organization_id: Optional[str] = None
    ) -> dict:
        """Find sub-organizations matching a filter; returns {"organizationIds": [...]}."""
        return await self.post(
            "/public/v1/query/list_suborgs",
            {
                "organizationId": organization_id or self.organization_id,
                "filterType": filter_type,
                "filterValue": filter_value,
            },
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
