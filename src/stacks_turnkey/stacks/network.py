"""Stacks network parameters."""

from dataclasses import dataclass
from typing import Optional, Union

TRANSACTION_VERSION_MAINNET = 0x00
TRANSACTION_VERSION_TESTNET = 0x80

CHAIN_ID_MAINNET = 0x00000001
CHAIN_ID_TESTNET = 0x80000000

HIRO_MAINNET_URL = "https://api.mainnet.hiro.so"
HIRO_TESTNET_URL = "https://api.testnet.hiro.so"


@dataclass(frozen=True)
class StacksNetwork:
    """Parameters that differ between mainnet and testnet."""
    name: str
    transaction_version: int
    chain_id: int
    api_url: str

    @property
    def is_mainnet(self) -> bool:
        return self.name == "mainnet"


STACKS_MAINNET = StacksNetwork(
    name="mainnet",
    transaction_version=TRANSACTION_VERSION_MAINNET,
    chain_id=CHAIN_ID_MAINNET,
    api_url=HIRO_MAINNET_URL,
)

STACKS_TESTNET = StacksNetwork(
    name="testnet",
    transaction_version=TRANSACTION_VERSION_TESTNET,
    chain_id=CHAIN_ID_TESTNET,
    api_url=HIRO_TESTNET_URL,
)


def get_network(
    network: Union[str, StacksNetwork], api_url: Optional[str] = None
) -> StacksNetwork:
    """Resolve a network name (or network) into StacksNetwork.

    Args:
        network: "mainnet", "testnet" or an existing StacksNetwork
        api_url: Optional API URL override

    Raises:
        ValueError: For unknown network names
    """
    if isinstance(network, StacksNetwork):
        resolved = network
    elif network == "mainnet":
        resolved = STACKS_MAINNET
    elif network == "testnet":
        resolved = STACKS_TESTNET
    else:
        raise ValueError(f"Unknown Stacks network: {network}")

    if api_url:
        resolved = StacksNetwork(
            name=resolved.name,
            transaction_version=resolved.transaction_version,
            chain_id=resolved.chain_id,
            api_url=api_url.rstrip("/"),
        )
    return resolved
