"""StacksTurnkey SDK entry point.

Holds configuration and the shared HTTP clients; user flows live in the
auth and transactions services.

    async with StacksTurnkey() as sdk:
        address = sdk.transactions.derive_stacks_address_from_turnkey_address(pub)
        balance = await sdk.transactions.get_stacks_balance(address)
"""

import logging
from typing import Optional

import httpx

from stacks_turnkey.chain.hiro import HiroClient
from stacks_turnkey.config import Network, Settings, get_settings
from stacks_turnkey.services.auth_service import AuthService
from stacks_turnkey.services.transaction_service import TransactionService
from stacks_turnkey.signing.base import SignerBackend, SignerType
from stacks_turnkey.signing.factory import get_signer, get_signer_type
from stacks_turnkey.turnkey.client import TurnkeyClient, TurnkeyError

logger = logging.getLogger(__name__)

DEFAULT_NAME = "Stacks Embed SDK"
DEFAULT_DESCRIPTION = "An SDK for Stacks Embedded wallet using turnkey"

NETWORKS = ("mainnet", "testnet")


class StacksTurnkey:
    """Stacks embedded wallet SDK backed by Turnkey."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        turnkey_client: Optional[TurnkeyClient] = None,
        signer: Optional[SignerBackend] = None,
        hiro_transport: Optional[httpx.AsyncBaseTransport] = None,
        network: Optional[Network] = None,
    ):
        """Initialize the SDK.

        Args:
            settings: SDK settings (defaults to environment settings)
            turnkey_client: Pre-built Turnkey client; created from settings if omitted
            signer: Signing backend; selected by settings.signer_backend if omitted
            hiro_transport: Optional httpx transport for Hiro clients (used by tests)
            network: Override settings.network
        """
        self.settings = settings or get_settings()
        self._network: Network = network or self.settings.network
        self._turnkey_client = turnkey_client
        self._signer = signer
        self._hiro_transport = hiro_transport
        self._hiro_clients: dict[str, HiroClient] = {}

        self.auth = AuthService(self)
        self.transactions = TransactionService(self)

    def get_name(self) -> str:
        return self.settings.name or DEFAULT_NAME

    def get_description(self) -> str:
        return self.settings.description or DEFAULT_DESCRIPTION

    def get_base_url(self) -> str:
        return self.settings.turnkey_api_base_url

    def get_api_public_key(self) -> str:
        return self.settings.turnkey_api_public_key

    def get_default_organization_id(self) -> str:
        return self.settings.turnkey_organization_id

    def get_network(self) -> Network:
        return self._network

    def set_network(self, network: Network) -> None:
        if network not in NETWORKS:
            raise ValueError(f"Unknown Stacks network: {network}")
        logger.info(f"Switching network: {self._network} -> {network}")
        self._network = network

    def get_client(self) -> TurnkeyClient:
        """Get the Turnkey client, creating it from settings on first use.

        Raises:
            TurnkeyError: If Turnkey credentials are not configured
        """
        if self._turnkey_client is None:
            if not self.settings.has_turnkey_credentials:
                raise TurnkeyError(
                    "Turnkey credentials not configured: set TURNKEY_API_PUBLIC_KEY, "
                    "TURNKEY_API_PRIVATE_KEY and TURNKEY_ORGANIZATION_ID"
                )
            self._turnkey_client = TurnkeyClient(
                api_public_key=self.settings.turnkey_api_public_key,
                api_private_key=self.settings.turnkey_api_private_key,
                organization_id=self.settings.turnkey_organization_id,
                base_url=self.settings.turnkey_api_base_url,
                timeout=self.settings.http_timeout,
                poll_interval=self.settings.activity_poll_interval,
                poll_attempts=self.settings.activity_poll_attempts,
            )
        return self._turnkey_client

    def get_hiro(self) -> HiroClient:
        """Get the Hiro client for the current network (one per network)."""
        network = self._network
        if network not in self._hiro_clients:
            api_url = (
                self.settings.hiro_mainnet_url if network == "mainnet"
                else self.settings.hiro_testnet_url
            )
            self._hiro_clients[network] = HiroClient(
                network=network,
                api_url=api_url,
                timeout=self.settings.http_timeout,
                transport=self._hiro_transport,
            )
        return self._hiro_clients[network]

    @property
    def signer(self) -> SignerBackend:
        if self._signer is None:
            client = None
            if get_signer_type(self.settings) == SignerType.TURNKEY:
                client = self.get_client()
            self._signer = get_signer(self.settings, client)
        return self._signer

    async def close(self) -> None:
        """Close all HTTP clients."""
        for client in self._hiro_clients.values():
            await client.close()
        self._hiro_clients.clear()
        if self._turnkey_client is not None:
            await self._turnkey_client.close()

    async def __aenter__(self) -> "StacksTurnkey":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
