"""Turnkey signing backend.

Keys live in Turnkey; the SDK only ever sees signatures. The pre-sign
sighash is submitted as a raw hexadecimal payload with HASH_FUNCTION_NO_OP,
so Turnkey signs the 32 bytes as-is.
"""

import logging
from typing import Optional

from stacks_turnkey.signing.base import (
    SignatureResult,
    SignerBackend,
    SignerType,
    SigningRequest,
)
from stacks_turnkey.turnkey.client import (
    ActivityTimeoutError,
    TurnkeyClient,
    TurnkeyError,
)

logger = logging.getLogger(__name__)


class TurnkeySigner(SignerBackend):
    """Signs hashes through Turnkey's sign_raw_payload activity.

    Keys are identified by the wallet account's public key (or address),
    passed to Turnkey as signWith.
    """

    def __init__(self, client: TurnkeyClient):
        super().__init__(SignerType.TURNKEY)
        self.client = client

    async def sign(self, request: SigningRequest) -> SignatureResult:
        """Sign message hash using Turnkey."""
        payload = "0x" + request.message_hash.removeprefix("0x")

        try:
            response = await self.client.sign_raw_payload(
                sign_with=request.key_id,
                payload=payload,
                encoding="PAYLOAD_ENCODING_HEXADECIMAL",
                hash_function="HASH_FUNCTION_NO_OP",
                organization_id=request.organization_id,
            )
        except ActivityTimeoutError as e:
            logger.error(f"Turnkey signing timed out: {e}")
            return SignatureResult(success=False, error=f"Signing timed out: {e}")
        except TurnkeyError as e:
            logger.error(f"Turnkey signing failed: {e}")
            return SignatureResult(success=False, error=str(e))

        if not response.get("r") or not response.get("s") or response.get("v") is None:
            return SignatureResult(success=False, error="No signature returned")

        return SignatureResult(
            success=True,
            v=response["v"],
            r=response["r"],
            s=response["s"],
            public_key=request.key_id,
        )

    async def get_public_key(self, key_id: str) -> Optional[str]:
        """Turnkey Stacks accounts are addressed by their public key."""
        return key_id

    async def health_check(self) -> bool:
        return bool(self.client.organization_id)
