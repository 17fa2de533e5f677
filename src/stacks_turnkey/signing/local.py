"""Local signing backend.

Uses in-memory secp256k1 private keys. Suitable for:
- Development/testing
- Devnet/testnet scripts without Turnkey credentials

WARNING: Private keys are stored in memory. Use Turnkey for real funds.
"""

import logging
from typing import Optional

from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.util import sigdecode_string, sigencode_string_canonize

from stacks_turnkey.signing.base import (
    KeyNotFoundError,
    SignatureResult,
    SignerBackend,
    SignerType,
    SigningRequest,
)

logger = logging.getLogger(__name__)


class LocalSigner(SignerBackend):
    """Local signing backend using in-memory private keys.

    Keys are indexed by their public key (compressed and uncompressed hex),
    so a request's key_id can be either form. The first key added is also
    the default.
    """

    def __init__(self, private_key_hex: Optional[str] = None):
        super().__init__(SignerType.LOCAL)
        self._keys: dict[str, SigningKey] = {}
        if private_key_hex:
            self.add_key(private_key_hex)

    def add_key(self, private_key_hex: str) -> str:
        """Add a private key; returns its compressed public key hex."""
        private_key = bytes.fromhex(private_key_hex.removeprefix("0x"))
        # Stacks private keys may carry a trailing 0x01 "compressed" marker
        if len(private_key) == 33 and private_key[-1] == 0x01:
            private_key = private_key[:32]

        sk = SigningKey.from_string(private_key, curve=SECP256k1)
        vk = sk.get_verifying_key()
        compressed = vk.to_string("compressed").hex()
        uncompressed = vk.to_string("uncompressed").hex()

        self._keys.setdefault("DEFAULT", sk)
        self._keys[compressed] = sk
        self._keys[uncompressed] = sk
        logger.info(f"Loaded local signing key {compressed[:10]}...")
        return compressed

    def _get_key(self, key_id: str) -> SigningKey:
        """Get private key for signing.

        Raises:
            KeyNotFoundError: If key not found
        """
        normalized = key_id.removeprefix("0x").lower()
        if normalized in self._keys:
            return self._keys[normalized]
        if "DEFAULT" in self._keys and normalized in ("", "default"):
            return self._keys["DEFAULT"]
        raise KeyNotFoundError(f"No local signing key for {key_id}")

    async def sign(self, request: SigningRequest) -> SignatureResult:
        """Sign a message hash with a deterministic (RFC 6979) low-S signature."""
        try:
            sk = self._get_key(request.key_id)
        except KeyNotFoundError as e:
            return SignatureResult(success=False, error=str(e))

        digest = bytes.fromhex(request.message_hash.removeprefix("0x"))
        signature = sk.sign_digest_deterministic(digest, sigencode=sigencode_string_canonize)
        vk = sk.get_verifying_key()

        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            signature, digest, SECP256k1, sigdecode=sigdecode_string
        )
        recovery_id = next(
            (i for i, candidate in enumerate(candidates)
             if candidate.to_string() == vk.to_string()),
            None,
        )
        if recovery_id is None:
            return SignatureResult(success=False, error="Could not determine recovery id")

        return SignatureResult(
            success=True,
            v=f"{recovery_id:02x}",
            r=signature[:32].hex(),
            s=signature[32:].hex(),
            public_key=vk.to_string("compressed").hex(),
        )

    async def get_public_key(self, key_id: str) -> Optional[str]:
        """Compressed public key for a key identifier."""
        try:
            sk = self._get_key(key_id)
        except KeyNotFoundError:
            return None
        return sk.get_verifying_key().to_string("compressed").hex()

    async def health_check(self) -> bool:
        """Check if any keys are loaded."""
        return len(self._keys) > 0

    def remove_key(self, key_id: str) -> None:
        """Remove a private key (both public key forms)."""
        sk = self._keys.get(key_id.removeprefix("0x").lower())
        if sk is None:
            return
        for name in [k for k, v in self._keys.items() if v is sk]:
            del self._keys[name]
