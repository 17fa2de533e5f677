"""Transaction signing services.

Provides signing implementations:
- TurnkeySigner: Turnkey-backed raw payload signing
- LocalSigner: For development/testing (private key in memory)
"""

from stacks_turnkey.signing.base import (
    KeyNotFoundError,
    SignatureResult,
    SignerBackend,
    SigningError,
    SigningRequest,
)
from stacks_turnkey.signing.factory import get_signer
from stacks_turnkey.signing.local import LocalSigner
from stacks_turnkey.signing.turnkey import TurnkeySigner

__all__ = [
    "KeyNotFoundError",
    "SignatureResult",
    "SignerBackend",
    "SigningError",
    "SigningRequest",
    "LocalSigner",
    "TurnkeySigner",
    "get_signer",
]
