"""Stacks addresses, Clarity values and transaction construction."""

from stacks_turnkey.stacks.c32 import (
    AddressError,
    c32_address,
    c32_address_decode,
    public_key_to_address,
    validate_address,
)
from stacks_turnkey.stacks.clarity import Cl, ClarityError, ClarityValue
from stacks_turnkey.stacks.network import (
    STACKS_MAINNET,
    STACKS_TESTNET,
    StacksNetwork,
    get_network,
)
from stacks_turnkey.stacks.transactions import (
    StacksTransaction,
    TransactionEncodingError,
    TransactionSigner,
    UnsignedContractCallOptions,
    UnsignedTokenTransferOptions,
    create_message_signature,
    estimate_transaction_size,
    make_unsigned_contract_call,
    make_unsigned_stx_token_transfer,
    sig_hash_pre_sign,
    signature_from_components,
)

__all__ = [
    "AddressError",
    "c32_address",
    "c32_address_decode",
    "public_key_to_address",
    "validate_address",
    "Cl",
    "ClarityError",
    "ClarityValue",
    "STACKS_MAINNET",
    "STACKS_TESTNET",
    "StacksNetwork",
    "get_network",
    "StacksTransaction",
    "TransactionEncodingError",
    "TransactionSigner",
    "UnsignedContractCallOptions",
    "UnsignedTokenTransferOptions",
    "create_message_signature",
    "estimate_transaction_size",
    "make_unsigned_contract_call",
    "make_unsigned_stx_token_transfer",
    "sig_hash_pre_sign",
    "signature_from_components",
]
