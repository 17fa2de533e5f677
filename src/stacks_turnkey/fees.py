"""Fee-aware transfer sizing.

All amounts are integers in base units (micro-STX for STX transfers).
The fee for a transaction is fee_rate * serialized size in bytes.
"""

import logging

logger = logging.getLogger(__name__)


class InsufficientFundsError(Exception):
    """Raised when the balance cannot cover the network fee."""

    def __init__(self, balance: int, estimated_fee: int):
        self.balance = balance
        self.estimated_fee = estimated_fee
        super().__init__(
            f"Balance too low to cover the fee: balance={balance}, fee={estimated_fee}"
        )


def _require_non_negative(**values: int) -> None:
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{name} must be an integer, got {type(value).__name__}")
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")


def estimate_fee(fee_rate: int, estimated_size: int) -> int:
    """Fee for a transaction of estimated_size bytes at fee_rate per byte."""
    _require_non_negative(fee_rate=fee_rate, estimated_size=estimated_size)
    return fee_rate * estimated_size


def compute_sendable_amount(balance: int, fee_rate: int, estimated_size: int) -> int:
    """Compute the maximum amount that can be sent after reserving the fee.

    Args:
        balance: Spendable balance in base units
        fee_rate: Fee per byte of serialized transaction
        estimated_size: Serialized transaction length in bytes

    Returns:
        balance - fee_rate * estimated_size

    Raises:
        InsufficientFundsError: If balance <= estimated fee
    """
    _require_non_negative(balance=balance)
    estimated_fee = estimate_fee(fee_rate, estimated_size)

    if balance <= estimated_fee:
        raise InsufficientFundsError(balance, estimated_fee)

    return balance - estimated_fee


def resolve_transfer_amount(
    requested: int,
    balance: int,
    fee_rate: int,
    estimated_size: int,
    auto_adjust: bool = True,
) -> int:
    """Decide how much to actually send for a requested transfer.

    When requested + fee fits in the balance the requested amount is kept.
    Otherwise the amount is reduced to the sendable maximum, or the transfer
    is refused if auto_adjust is disabled.

    Raises:
        InsufficientFundsError: If the balance cannot cover the fee, or it
            cannot cover requested + fee and auto_adjust is False
    """
    _require_non_negative(requested=requested, balance=balance)
    estimated_fee = estimate_fee(fee_rate, estimated_size)

    if balance >= requested + estimated_fee:
        return requested

    if not auto_adjust:
        raise InsufficientFundsError(balance, estimated_fee)

    adjusted = compute_sendable_amount(balance, fee_rate, estimated_size)
    logger.warning(
        f"Insufficient funds for {requested} + fee {estimated_fee}. "
        f"Adjusting send amount to {adjusted}."
    )
    return adjusted
