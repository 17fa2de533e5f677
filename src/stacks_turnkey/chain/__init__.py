"""Stacks chain API access."""

from stacks_turnkey.chain.hiro import BroadcastError, ChainAPIError, HiroClient

__all__ = [
    "BroadcastError",
    "ChainAPIError",
    "HiroClient",
]
