"""Stacks transaction construction and signing hashes.

Builds single-sig standard transactions (STX token transfers and contract
calls) in SIP-005 wire format. Signing itself is done elsewhere: callers
take the pre-sign sighash from TransactionSigner, get a recoverable
secp256k1 signature over it, and attach it with set_signature().

Wire layout:
    version(1) chain_id(4) auth anchor_mode(1) post_condition_mode(1)
    post_conditions(4 + n) payload
"""

import hashlib
import struct
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Optional, Union

from stacks_turnkey.stacks.c32 import AddressError, c32_address_decode, hash160
from stacks_turnkey.stacks.clarity import (
    ClarityError,
    ClarityValue,
    principal_cv,
)
from stacks_turnkey.stacks.network import StacksNetwork, get_network

MEMO_MAX_LENGTH_BYTES = 34
RECOVERABLE_ECDSA_SIG_LENGTH_BYTES = 65
EMPTY_SIGNATURE = bytes(RECOVERABLE_ECDSA_SIG_LENGTH_BYTES)


class TransactionEncodingError(ValueError):
    """Raised when transaction fields cannot be encoded."""
    pass


class AuthType(IntEnum):
    STANDARD = 0x04
    SPONSORED = 0x05


class AddressHashMode(IntEnum):
    P2PKH = 0x00
    P2SH = 0x01
    P2WPKH = 0x02
    P2WSH = 0x03


class PubKeyEncoding(IntEnum):
    COMPRESSED = 0x00
    UNCOMPRESSED = 0x01


class AnchorMode(IntEnum):
    ON_CHAIN_ONLY = 0x01
    OFF_CHAIN_ONLY = 0x02
    ANY = 0x03


class PostConditionMode(IntEnum):
    ALLOW = 0x01
    DENY = 0x02


class PayloadType(IntEnum):
    TOKEN_TRANSFER = 0x00
    CONTRACT_CALL = 0x02


def sha512_256(data: bytes) -> bytes:
    """SHA-512/256 digest, used for txids and sighashes."""
    return hashlib.new("sha512_256", data).digest()


def _u64(value: int) -> bytes:
    if not 0 <= value < 2**64:
        raise TransactionEncodingError(f"Value out of range for u64: {value}")
    return struct.pack(">Q", value)


def _lp_string(value: str, what: str) -> bytes:
    try:
        encoded = value.encode("ascii")
    except UnicodeEncodeError as e:
        raise TransactionEncodingError(f"Non-ASCII character in {what}: {value!r}") from e
    if not encoded or len(encoded) > 128:
        raise TransactionEncodingError(f"Invalid {what}: {value!r}")
    return bytes([len(encoded)]) + encoded


# -----------------------------------------------------------------------------
# Authorization
# -----------------------------------------------------------------------------

@dataclass
class SingleSigSpendingCondition:
    """Origin spending condition for a single-sig account."""
    signer: bytes                 # hash160 of the public key
    nonce: int
    fee: int
    key_encoding: PubKeyEncoding
    hash_mode: AddressHashMode = AddressHashMode.P2PKH
    signature: bytes = EMPTY_SIGNATURE

    @classmethod
    def from_public_key(cls, public_key: str, nonce: int, fee: int) -> "SingleSigSpendingCondition":
        try:
            key_bytes = bytes.fromhex(public_key.removeprefix("0x"))
        except ValueError as e:
            raise TransactionEncodingError(f"Public key is not valid hex: {e}") from e

        if len(key_bytes) == 33:
            encoding = PubKeyEncoding.COMPRESSED
        elif len(key_bytes) == 65:
            encoding = PubKeyEncoding.UNCOMPRESSED
        else:
            raise TransactionEncodingError(f"Invalid public key length: {len(key_bytes)}")

        return cls(signer=hash160(key_bytes), nonce=nonce, fee=fee, key_encoding=encoding)

    def cleared(self) -> "SingleSigSpendingCondition":
        """Copy with nonce, fee and signature zeroed (initial sighash form)."""
        return replace(self, nonce=0, fee=0, signature=EMPTY_SIGNATURE)

    def serialize(self) -> bytes:
        if len(self.signer) != 20:
            raise TransactionEncodingError("Signer hash must be 20 bytes")
        if len(self.signature) != RECOVERABLE_ECDSA_SIG_LENGTH_BYTES:
            raise TransactionEncodingError("Signature must be 65 bytes")
        return (
            bytes([self.hash_mode])
            + self.signer
            + _u64(self.nonce)
            + _u64(self.fee)
            + bytes([self.key_encoding])
            + self.signature
        )


@dataclass
class StandardAuthorization:
    spending_condition: SingleSigSpendingCondition
    auth_type: AuthType = AuthType.STANDARD

    def serialize(self) -> bytes:
        return bytes([self.auth_type]) + self.spending_condition.serialize()


# -----------------------------------------------------------------------------
# Payloads
# -----------------------------------------------------------------------------

@dataclass
class TokenTransferPayload:
    recipient: ClarityValue
    amount: int
    memo: str = ""
    payload_type = PayloadType.TOKEN_TRANSFER

    def serialize(self) -> bytes:
        memo_bytes = self.memo.encode("utf-8")
        if len(memo_bytes) > MEMO_MAX_LENGTH_BYTES:
            raise TransactionEncodingError(
                f"Memo exceeds {MEMO_MAX_LENGTH_BYTES} bytes: {len(memo_bytes)}"
            )
        return (
            bytes([self.payload_type])
            + self.recipient.serialize()
            + _u64(self.amount)
            + memo_bytes.ljust(MEMO_MAX_LENGTH_BYTES, b"\x00")
        )


@dataclass
class ContractCallPayload:
    contract_address: str
    contract_name: str
    function_name: str
    function_args: list = field(default_factory=list)
    payload_type = PayloadType.CONTRACT_CALL

    def serialize(self) -> bytes:
        try:
            version, hash_bytes = c32_address_decode(self.contract_address)
        except AddressError as e:
            raise TransactionEncodingError(str(e)) from e

        parts = [
            bytes([self.payload_type]),
            bytes([version]),
            hash_bytes,
            _lp_string(self.contract_name, "contract name"),
            _lp_string(self.function_name, "function name"),
            struct.pack(">I", len(self.function_args)),
        ]
        parts.extend(arg.serialize() for arg in self.function_args)
        return b"".join(parts)


Payload = Union[TokenTransferPayload, ContractCallPayload]


# -----------------------------------------------------------------------------
# Transaction
# -----------------------------------------------------------------------------

@dataclass
class StacksTransaction:
    version: int
    chain_id: int
    auth: StandardAuthorization
    payload: Payload
    anchor_mode: AnchorMode = AnchorMode.ANY
    post_condition_mode: PostConditionMode = PostConditionMode.DENY
    post_conditions: list = field(default_factory=list)

    @property
    def spending_condition(self) -> SingleSigSpendingCondition:
        return self.auth.spending_condition

    def serialize(self) -> bytes:
        parts = [
            bytes([self.version]),
            struct.pack(">I", self.chain_id),
            self.auth.serialize(),
            bytes([self.anchor_mode]),
            bytes([self.post_condition_mode]),
            struct.pack(">I", len(self.post_conditions)),
        ]
        parts.extend(pc.serialize() for pc in self.post_conditions)
        parts.append(self.payload.serialize())
        return b"".join(parts)

    def serialize_hex(self) -> str:
        return self.serialize().hex()

    def txid(self) -> str:
        return sha512_256(self.serialize()).hex()

    def initial_sig_hash(self) -> str:
        """Txid of this transaction with the origin condition cleared."""
        cleared = replace(
            self,
            auth=replace(self.auth, spending_condition=self.spending_condition.cleared()),
        )
        return cleared.txid()

    def set_signature(self, signature: bytes) -> None:
        """Attach a 65-byte recoverable signature to the origin condition."""
        self.spending_condition.signature = create_message_signature(signature)


class TransactionSigner:
    """Tracks the sighash for signing a transaction's origin."""

    def __init__(self, transaction: StacksTransaction):
        self.transaction = transaction
        self.sig_hash = transaction.initial_sig_hash()

    def pre_sign_sig_hash(self) -> str:
        condition = self.transaction.spending_condition
        return sig_hash_pre_sign(
            self.sig_hash,
            self.transaction.auth.auth_type,
            condition.fee,
            condition.nonce,
        )


def sig_hash_pre_sign(cur_sig_hash: str, auth_type: int, fee: int, nonce: int) -> str:
    """Hash that the origin key actually signs.

    SHA-512/256(cur_sig_hash || auth_type(1) || fee(8) || nonce(8)), as hex.
    """
    data = bytes.fromhex(cur_sig_hash) + bytes([auth_type]) + _u64(fee) + _u64(nonce)
    return sha512_256(data).hex()


def create_message_signature(signature: Union[str, bytes]) -> bytes:
    """Validate a VRS recoverable signature (hex or bytes) and return its bytes."""
    if isinstance(signature, str):
        try:
            signature = bytes.fromhex(signature.removeprefix("0x"))
        except ValueError as e:
            raise TransactionEncodingError(f"Signature is not valid hex: {e}") from e
    if len(signature) != RECOVERABLE_ECDSA_SIG_LENGTH_BYTES:
        raise TransactionEncodingError(
            f"Invalid signature length: {len(signature)} (expected 65)"
        )
    return bytes(signature)


def signature_from_components(v: Union[str, int], r: str, s: str) -> str:
    """Join v, r and s into a 65-byte VRS signature hex string.

    r and s are left-padded to 32 bytes; v is a single recovery byte.
    """
    if isinstance(v, int):
        v_hex = f"{v:02x}"
    else:
        v_hex = v.removeprefix("0x").rjust(2, "0")
    r_hex = r.removeprefix("0x").rjust(64, "0")
    s_hex = s.removeprefix("0x").rjust(64, "0")
    signature = f"{v_hex}{r_hex}{s_hex}"
    create_message_signature(signature)
    return signature


# -----------------------------------------------------------------------------
# Builders
# -----------------------------------------------------------------------------

@dataclass
class UnsignedTokenTransferOptions:
    recipient: str
    amount: int
    public_key: str
    nonce: int = 0
    fee: int = 0
    memo: str = ""
    network: Union[str, StacksNetwork] = "testnet"
    anchor_mode: AnchorMode = AnchorMode.ANY


@dataclass
class UnsignedContractCallOptions:
    contract_address: str
    contract_name: str
    function_name: str
    function_args: list
    public_key: str
    nonce: Optional[int] = None
    fee: Optional[int] = None
    network: Union[str, StacksNetwork] = "testnet"
    anchor_mode: AnchorMode = AnchorMode.ANY
    post_condition_mode: PostConditionMode = PostConditionMode.DENY
    post_conditions: list = field(default_factory=list)
    num_signatures: int = 1


def _build(
    network: Union[str, StacksNetwork],
    public_key: str,
    nonce: Optional[int],
    fee: Optional[int],
    payload: Payload,
    anchor_mode: AnchorMode,
    post_condition_mode: PostConditionMode = PostConditionMode.DENY,
    post_conditions: Optional[list] = None,
) -> StacksTransaction:
    stacks_network = get_network(network)
    condition = SingleSigSpendingCondition.from_public_key(public_key, nonce or 0, fee or 0)
    return StacksTransaction(
        version=stacks_network.transaction_version,
        chain_id=stacks_network.chain_id,
        auth=StandardAuthorization(condition),
        payload=payload,
        anchor_mode=anchor_mode,
        post_condition_mode=post_condition_mode,
        post_conditions=list(post_conditions or []),
    )


def make_unsigned_stx_token_transfer(options: UnsignedTokenTransferOptions) -> StacksTransaction:
    """Build an unsigned STX transfer from a single-sig origin."""
    try:
        recipient = principal_cv(options.recipient)
    except ClarityError as e:
        raise TransactionEncodingError(f"Invalid recipient: {e}") from e

    payload = TokenTransferPayload(recipient=recipient, amount=options.amount, memo=options.memo)
    return _build(
        options.network,
        options.public_key,
        options.nonce,
        options.fee,
        payload,
        options.anchor_mode,
    )


def make_unsigned_contract_call(options: UnsignedContractCallOptions) -> StacksTransaction:
    """Build an unsigned contract call from a single-sig origin."""
    if options.num_signatures != 1:
        raise TransactionEncodingError("Only single-sig contract calls are supported")

    payload = ContractCallPayload(
        contract_address=options.contract_address,
        contract_name=options.contract_name,
        function_name=options.function_name,
        function_args=list(options.function_args),
    )
    return _build(
        options.network,
        options.public_key,
        options.nonce,
        options.fee,
        payload,
        options.anchor_mode,
        options.post_condition_mode,
        options.post_conditions,
    )


def estimate_transaction_size(transaction: StacksTransaction) -> int:
    """Serialized byte length of a transaction."""
    return len(transaction.serialize())
