"""Stacks embedded wallet SDK backed by Turnkey key custody."""

from stacks_turnkey.config import Settings, get_settings
from stacks_turnkey.fees import InsufficientFundsError, compute_sendable_amount
from stacks_turnkey.sdk import StacksTurnkey

__version__ = "0.1.0"

__all__ = [
    "InsufficientFundsError",
    "Settings",
    "StacksTurnkey",
    "compute_sendable_amount",
    "get_settings",
]
