"""Signer factory.

Creates the signing backend selected by SIGNER_BACKEND (settings.signer_backend).
"""

import logging
from typing import Optional

from stacks_turnkey.config import Settings
from stacks_turnkey.signing.base import SignerBackend, SignerType, SigningError
from stacks_turnkey.turnkey.client import TurnkeyClient

logger = logging.getLogger(__name__)


def get_signer_type(settings: Settings) -> SignerType:
    """Determine which signer to use.

    Priority:
    1. settings.signer_backend (SIGNER_BACKEND env var)
    2. Default to Turnkey
    """
    if settings.signer_backend == "local":
        return SignerType.LOCAL
    return SignerType.TURNKEY


def get_signer(settings: Settings, turnkey_client: Optional[TurnkeyClient] = None) -> SignerBackend:
    """Create the configured signer.

    Raises:
        SigningError: If the Turnkey backend is selected without a client, or
            the local backend without a private key
    """
    signer_type = get_signer_type(settings)
    logger.info(f"Initializing {signer_type.value} signer")

    if signer_type == SignerType.LOCAL:
        if not settings.local_signer_private_key:
            raise SigningError("LOCAL_SIGNER_PRIVATE_KEY is required for the local signer")
        from stacks_turnkey.signing.local import LocalSigner
        return LocalSigner(settings.local_signer_private_key)

    if turnkey_client is None:
        raise SigningError("Turnkey signer requires a Turnkey client")
    from stacks_turnkey.signing.turnkey import TurnkeySigner
    return TurnkeySigner(turnkey_client)


async def get_signer_info(signer: SignerBackend) -> dict:
    """Get information about a signer: type, health status and class."""
    health = await signer.health_check()
    return {
        "type": signer.signer_type.value,
        "healthy": health,
        "class": signer.__class__.__name__,
    }
