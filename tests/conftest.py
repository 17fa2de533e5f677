"""Pytest configuration and fixtures."""

import os

import httpx
import pytest
from ecdsa import SECP256k1, SigningKey

# Set test environment
os.environ["NETWORK"] = "testnet"
os.environ["DEBUG"] = "true"
os.environ["SIGNER_BACKEND"] = "local"
os.environ["TURNKEY_API_PUBLIC_KEY"] = ""
os.environ["TURNKEY_API_PRIVATE_KEY"] = ""
os.environ["TURNKEY_ORGANIZATION_ID"] = ""

from stacks_turnkey.config import Settings
from stacks_turnkey.signing.local import LocalSigner
from stacks_turnkey.stacks.c32 import c32_address

TEST_PRIVATE_KEY = "edf9aee84d9b7abc145504dde6726c64f369d37ee34ded868fabd876c26570bc"
RECIPIENT_HASH160 = "a46ff88886c2ef9762d970b4d2c63678835bd39d"
RECIPIENT = c32_address(26, bytes.fromhex(RECIPIENT_HASH160))


class FakeHiro:
    """In-memory stand-in for the Hiro API, served through httpx.MockTransport."""

    def __init__(self, balance: int = 1_000_000, nonce: int = 5, fee_rate: int = 1):
        self.balance = balance
        self.nonce = nonce
        self.fee_rate = fee_rate
        self.transactions: list = []
        self.broadcasts: list[bytes] = []
        self.failing: set[str] = set()
        self.replies: dict[str, dict] = {}
        self.reject_reason: str = ""
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        for prefix in self.failing:
            if path.startswith(prefix):
                return httpx.Response(500, text="internal error")
        for prefix, reply in self.replies.items():
            if path.startswith(prefix):
                return httpx.Response(200, **reply)

        if path.startswith("/extended/v1/address/") and path.endswith("/balances"):
            return httpx.Response(200, json={"stx": {"balance": str(self.balance)}})
        if path.startswith("/v2/accounts/"):
            return httpx.Response(200, json={"balance": "0x0", "nonce": self.nonce})
        if path == "/v2/fees/transfer":
            return httpx.Response(200, text=str(self.fee_rate))
        if path.startswith("/extended/v2/addresses/"):
            return httpx.Response(
                200, json={"limit": 20, "offset": 0, "total": len(self.transactions),
                           "results": self.transactions},
            )
        if path == "/v2/transactions":
            self.broadcasts.append(request.content)
            if self.reject_reason:
                return httpx.Response(400, json={
                    "error": "transaction rejected",
                    "reason": self.reject_reason,
                    "txid": "ab" * 32,
                })
            return httpx.Response(200, json="cd" * 32)

        return httpx.Response(404, text=f"no route for {path}")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def signing_key() -> SigningKey:
    return SigningKey.from_string(bytes.fromhex(TEST_PRIVATE_KEY), curve=SECP256k1)


@pytest.fixture
def public_key(signing_key) -> str:
    """Uncompressed public key hex, the form Turnkey reports as a wallet address."""
    return signing_key.get_verifying_key().to_string("uncompressed").hex()


@pytest.fixture
def local_signer() -> LocalSigner:
    return LocalSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        network="testnet",
        signer_backend="local",
        local_signer_private_key=TEST_PRIVATE_KEY,
        turnkey_organization_id="org-parent",
        activity_poll_interval=0,
    )


@pytest.fixture
def fake_hiro() -> FakeHiro:
    return FakeHiro()
