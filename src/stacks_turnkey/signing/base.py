"""Base interfaces for transaction signing.

Signing flow:
1. Build unsigned transaction
2. Compute the pre-sign sighash
3. Submit the sighash to a signer with the key identifier
4. Signer returns a recoverable signature (never the private key)
5. Attach signature to the transaction and broadcast
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from stacks_turnkey.stacks.c32 import public_key_to_address
from stacks_turnkey.stacks.transactions import signature_from_components

logger = logging.getLogger(__name__)


class SignerType(str, Enum):
    """Type of signing backend."""
    TURNKEY = "turnkey"       # Turnkey raw-payload signing
    LOCAL = "local"           # Private key in memory (development)


@dataclass
class SigningRequest:
    """Request to sign a 32-byte hash.

    Attributes:
        key_id: Signing key identifier (Turnkey wallet public key or address)
        message_hash: Hash to sign, hex (with or without 0x)
        organization_id: Turnkey organization owning the key
    """
    key_id: str
    message_hash: str
    organization_id: Optional[str] = None


@dataclass
class SignatureResult:
    """Result of signing operation.

    Attributes:
        success: Whether signing succeeded
        v: Recovery id as hex byte ("00" or "01")
        r: R component (hex)
        s: S component (hex)
        public_key: Public key that created the signature
        error: Error message if signing failed
    """
    success: bool
    v: Optional[str] = None
    r: Optional[str] = None
    s: Optional[str] = None
    public_key: Optional[str] = None
    error: Optional[str] = None

    def to_message_signature(self) -> str:
        """65-byte VRS signature hex, as carried in a spending condition."""
        if not self.success or self.v is None or not self.r or not self.s:
            raise SigningError(self.error or "No signature returned")
        return signature_from_components(self.v, self.r, self.s)


class SignerBackend(ABC):
    """Abstract base class for signing backends.

    Implementations should NEVER expose raw private keys.
    All signing operations return signatures only.
    """

    def __init__(self, signer_type: SignerType):
        self.signer_type = signer_type

    @abstractmethod
    async def sign(self, request: SigningRequest) -> SignatureResult:
        """Sign a message hash.

        Args:
            request: Signing request with message hash and key identifier

        Returns:
            SignatureResult with signature components
        """
        pass

    @abstractmethod
    async def get_public_key(self, key_id: str) -> Optional[str]:
        """Get public key (hex) for a key identifier, or None if not found."""
        pass

    async def get_address(self, key_id: str, network: str = "testnet") -> Optional[str]:
        """Get the Stacks address for a key identifier.

        Args:
            key_id: Key identifier
            network: "mainnet" or "testnet"

        Returns:
            Stacks address, or None if the key is not found
        """
        public_key = await self.get_public_key(key_id)
        if not public_key:
            return None
        return public_key_to_address(public_key, network)

    async def health_check(self) -> bool:
        """Check if the signing backend is available."""
        return True

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(type={self.signer_type.value})"


class SigningError(Exception):
    """Exception raised when signing fails."""
    pass


class KeyNotFoundError(SigningError):
    """Exception raised when signing key is not found."""
    pass
