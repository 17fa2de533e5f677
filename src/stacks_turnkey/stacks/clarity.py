"""Clarity value encoding (SIP-005 consensus serialization).

Each value serializes as a 1-byte type prefix followed by its body.
Lengths are 4-byte big-endian unless noted.
"""

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional

from stacks_turnkey.stacks.c32 import AddressError, c32_address, c32_address_decode

MAX_CONTRACT_NAME_LENGTH = 128


class ClarityError(ValueError):
    """Raised when a value cannot be represented in Clarity."""
    pass


class ClarityType(IntEnum):
    """Type prefixes for serialized Clarity values."""
    INT = 0x00
    UINT = 0x01
    BUFFER = 0x02
    BOOL_TRUE = 0x03
    BOOL_FALSE = 0x04
    PRINCIPAL_STANDARD = 0x05
    PRINCIPAL_CONTRACT = 0x06
    RESPONSE_OK = 0x07
    RESPONSE_ERR = 0x08
    OPTIONAL_NONE = 0x09
    OPTIONAL_SOME = 0x0A
    LIST = 0x0B
    TUPLE = 0x0C
    STRING_ASCII = 0x0D
    STRING_UTF8 = 0x0E


def _u32(value: int) -> bytes:
    return struct.pack(">I", value)


def _length_prefixed_name(name: str, what: str) -> bytes:
    encoded = name.encode("ascii")
    if not encoded or len(encoded) > MAX_CONTRACT_NAME_LENGTH:
        raise ClarityError(f"Invalid {what} length: {len(encoded)}")
    return bytes([len(encoded)]) + encoded


class ClarityValue:
    """Base class for Clarity values."""

    type_id: ClarityType

    def serialize_body(self) -> bytes:
        return b""

    def serialize(self) -> bytes:
        return bytes([self.type_id]) + self.serialize_body()

    def serialize_hex(self) -> str:
        return self.serialize().hex()


@dataclass
class IntCV(ClarityValue):
    value: int
    type_id = ClarityType.INT

    def __post_init__(self):
        if not -(2**127) <= self.value < 2**127:
            raise ClarityError(f"Value out of range for int: {self.value}")

    def serialize_body(self) -> bytes:
        return self.value.to_bytes(16, "big", signed=True)


@dataclass
class UIntCV(ClarityValue):
    value: int
    type_id = ClarityType.UINT

    def __post_init__(self):
        if not 0 <= self.value < 2**128:
            raise ClarityError(f"Value out of range for uint: {self.value}")

    def serialize_body(self) -> bytes:
        return self.value.to_bytes(16, "big")


@dataclass
class BufferCV(ClarityValue):
    value: bytes
    type_id = ClarityType.BUFFER

    def serialize_body(self) -> bytes:
        return _u32(len(self.value)) + bytes(self.value)


@dataclass
class BoolCV(ClarityValue):
    value: bool

    @property
    def type_id(self) -> ClarityType:
        return ClarityType.BOOL_TRUE if self.value else ClarityType.BOOL_FALSE


@dataclass
class StandardPrincipalCV(ClarityValue):
    version: int
    hash160: bytes
    type_id = ClarityType.PRINCIPAL_STANDARD

    @classmethod
    def from_address(cls, address: str) -> "StandardPrincipalCV":
        try:
            version, hash_bytes = c32_address_decode(address)
        except AddressError as e:
            raise ClarityError(str(e)) from e
        return cls(version, hash_bytes)

    @property
    def address(self) -> str:
        return c32_address(self.version, self.hash160)

    def serialize_body(self) -> bytes:
        return bytes([self.version]) + self.hash160


@dataclass
class ContractPrincipalCV(ClarityValue):
    version: int
    hash160: bytes
    contract_name: str
    type_id = ClarityType.PRINCIPAL_CONTRACT

    @classmethod
    def from_identifier(cls, address: str, contract_name: str) -> "ContractPrincipalCV":
        try:
            version, hash_bytes = c32_address_decode(address)
        except AddressError as e:
            raise ClarityError(str(e)) from e
        return cls(version, hash_bytes, contract_name)

    @property
    def address(self) -> str:
        return c32_address(self.version, self.hash160)

    def serialize_body(self) -> bytes:
        return (
            bytes([self.version])
            + self.hash160
            + _length_prefixed_name(self.contract_name, "contract name")
        )


@dataclass
class ResponseOkCV(ClarityValue):
    value: ClarityValue
    type_id = ClarityType.RESPONSE_OK

    def serialize_body(self) -> bytes:
        return self.value.serialize()


@dataclass
class ResponseErrCV(ClarityValue):
    value: ClarityValue
    type_id = ClarityType.RESPONSE_ERR

    def serialize_body(self) -> bytes:
        return self.value.serialize()


@dataclass
class NoneCV(ClarityValue):
    type_id = ClarityType.OPTIONAL_NONE


@dataclass
class SomeCV(ClarityValue):
    value: ClarityValue
    type_id = ClarityType.OPTIONAL_SOME

    def serialize_body(self) -> bytes:
        return self.value.serialize()


@dataclass
class ListCV(ClarityValue):
    values: list = field(default_factory=list)
    type_id = ClarityType.LIST

    def serialize_body(self) -> bytes:
        return _u32(len(self.values)) + b"".join(v.serialize() for v in self.values)


@dataclass
class TupleCV(ClarityValue):
    data: dict = field(default_factory=dict)
    type_id = ClarityType.TUPLE

    def serialize_body(self) -> bytes:
        # Keys are serialized in lexicographic order
        parts = [_u32(len(self.data))]
        for key in sorted(self.data):
            parts.append(_length_prefixed_name(key, "tuple key"))
            parts.append(self.data[key].serialize())
        return b"".join(parts)


@dataclass
class StringAsciiCV(ClarityValue):
    value: str
    type_id = ClarityType.STRING_ASCII

    def serialize_body(self) -> bytes:
        try:
            encoded = self.value.encode("ascii")
        except UnicodeEncodeError as e:
            raise ClarityError(f"Non-ASCII character in string-ascii: {e}") from e
        return _u32(len(encoded)) + encoded


@dataclass
class StringUtf8CV(ClarityValue):
    value: str
    type_id = ClarityType.STRING_UTF8

    def serialize_body(self) -> bytes:
        encoded = self.value.encode("utf-8")
        return _u32(len(encoded)) + encoded


def principal_cv(principal: str) -> ClarityValue:
    """Parse "ADDRESS" or "ADDRESS.contract-name" into a principal value."""
    if "." in principal:
        address, contract_name = principal.split(".", 1)
        return ContractPrincipalCV.from_identifier(address, contract_name)
    return StandardPrincipalCV.from_address(principal)


class Cl:
    """Short constructors for Clarity values.

    Builtin-shadowing names (int, bool, list, tuple) are defined last.
    """

    @staticmethod
    def uint(value: int) -> UIntCV:
        return UIntCV(int(value))

    @staticmethod
    def buffer(value: bytes) -> BufferCV:
        return BufferCV(bytes(value))

    @staticmethod
    def buffer_from_hex(value: str) -> BufferCV:
        return BufferCV(bytes.fromhex(value.removeprefix("0x")))

    @staticmethod
    def principal(value: str) -> ClarityValue:
        return principal_cv(value)

    @staticmethod
    def standard_principal(address: str) -> StandardPrincipalCV:
        return StandardPrincipalCV.from_address(address)

    @staticmethod
    def contract_principal(address: str, contract_name: str) -> ContractPrincipalCV:
        return ContractPrincipalCV.from_identifier(address, contract_name)

    @staticmethod
    def none() -> NoneCV:
        return NoneCV()

    @staticmethod
    def some(value: ClarityValue) -> SomeCV:
        return SomeCV(value)

    @staticmethod
    def optional(value: Optional[ClarityValue]) -> ClarityValue:
        return NoneCV() if value is None else SomeCV(value)

    @staticmethod
    def ok(value: ClarityValue) -> ResponseOkCV:
        return ResponseOkCV(value)

    @staticmethod
    def error(value: ClarityValue) -> ResponseErrCV:
        return ResponseErrCV(value)

    @staticmethod
    def string_ascii(value: str) -> StringAsciiCV:
        return StringAsciiCV(value)

    @staticmethod
    def string_utf8(value: str) -> StringUtf8CV:
        return StringUtf8CV(value)

    @staticmethod
    def list(values) -> ListCV:
        return ListCV(list(values))

    @staticmethod
    def tuple(data: dict) -> TupleCV:
        return TupleCV(dict(data))

    @staticmethod
    def int(value: int) -> IntCV:
        return IntCV(int(value))

    @staticmethod
    def bool(value: bool) -> BoolCV:
        return BoolCV(bool(value))
