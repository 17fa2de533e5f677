"""Turnkey key-custody API access."""

from stacks_turnkey.turnkey.client import (
    ActivityFailedError,
    ActivityTimeoutError,
    TurnkeyAPIError,
    TurnkeyClient,
    TurnkeyError,
)

__all__ = [
    "ActivityFailedError",
    "ActivityTimeoutError",
    "TurnkeyAPIError",
    "TurnkeyClient",
    "TurnkeyError",
]
