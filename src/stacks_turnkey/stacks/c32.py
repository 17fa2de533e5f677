"""Crockford base-32 check encoding for Stacks addresses.

Address format: "S" + version char + c32(hash160 + checksum), where the
checksum is the first 4 bytes of SHA256(SHA256(version || hash160)).
"""

import hashlib

C32_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

# Single-sig address versions
ADDRESS_VERSION_MAINNET_SINGLE_SIG = 22  # 'P' -> SP...
ADDRESS_VERSION_MAINNET_MULTI_SIG = 20   # 'M' -> SM...
ADDRESS_VERSION_TESTNET_SINGLE_SIG = 26  # 'T' -> ST...
ADDRESS_VERSION_TESTNET_MULTI_SIG = 21   # 'N' -> SN...


class AddressError(ValueError):
    """Raised for malformed c32 input or Stacks addresses."""
    pass


def hash160(data: bytes) -> bytes:
    """RIPEMD160(SHA256(data))."""
    sha256_hash = hashlib.sha256(data).digest()
    return hashlib.new("ripemd160", sha256_hash).digest()


def _checksum(data: bytes) -> bytes:
    return hashlib.sha256(hashlib.sha256(data).digest()).digest()[:4]


def _normalize(c32_input: str) -> str:
    return c32_input.upper().replace("O", "0").replace("L", "1").replace("I", "1")


def c32encode(data: bytes) -> str:
    """Encode bytes as c32, one leading '0' per leading zero byte."""
    number = int.from_bytes(data, "big")
    digits = []
    while number > 0:
        number, remainder = divmod(number, 32)
        digits.append(C32_ALPHABET[remainder])

    leading_zeros = len(data) - len(data.lstrip(b"\x00"))
    return C32_ALPHABET[0] * leading_zeros + "".join(reversed(digits))


def c32decode(c32_input: str) -> bytes:
    """Decode a c32 string back into bytes."""
    c32_input = _normalize(c32_input)
    if any(ch not in C32_ALPHABET for ch in c32_input):
        raise AddressError(f"Not a c32-encoded string: {c32_input!r}")

    leading_zeros = len(c32_input) - len(c32_input.lstrip(C32_ALPHABET[0]))
    number = 0
    for ch in c32_input:
        number = number * 32 + C32_ALPHABET.index(ch)

    body = number.to_bytes((number.bit_length() + 7) // 8, "big") if number else b""
    return b"\x00" * leading_zeros + body


def c32check_encode(version: int, data: bytes) -> str:
    """Version character followed by c32(data + checksum)."""
    if not 0 <= version < 32:
        raise AddressError(f"Invalid version {version}: must be in [0, 32)")
    checksum = _checksum(bytes([version]) + data)
    return C32_ALPHABET[version] + c32encode(data + checksum)


def c32check_decode(c32_input: str) -> tuple[int, bytes]:
    """Decode a c32check string into (version, data)."""
    c32_input = _normalize(c32_input)
    if len(c32_input) < 2:
        raise AddressError("c32check string too short")

    version_char = c32_input[0]
    if version_char not in C32_ALPHABET:
        raise AddressError(f"Invalid version character: {version_char!r}")
    version = C32_ALPHABET.index(version_char)

    decoded = c32decode(c32_input[1:])
    if len(decoded) < 4:
        raise AddressError("c32check payload too short")

    data, checksum = decoded[:-4], decoded[-4:]
    if _checksum(bytes([version]) + data) != checksum:
        raise AddressError("Invalid c32check checksum")
    return version, data


def c32_address(version: int, hash160_bytes: bytes) -> str:
    """Build a Stacks address from version and 20-byte hash160."""
    if len(hash160_bytes) != 20:
        raise AddressError(f"hash160 must be 20 bytes, got {len(hash160_bytes)}")
    return "S" + c32check_encode(version, hash160_bytes)


def c32_address_decode(address: str) -> tuple[int, bytes]:
    """Split a Stacks address into (version, hash160)."""
    if len(address) <= 5 or not address.startswith("S"):
        raise AddressError(f"Invalid Stacks address: {address!r}")
    version, data = c32check_decode(address[1:])
    if len(data) != 20:
        raise AddressError(f"Invalid Stacks address hash length: {len(data)}")
    return version, data


def validate_address(address: str) -> bool:
    """Check that an address decodes with a valid checksum."""
    try:
        c32_address_decode(address)
    except AddressError:
        return False
    return True


def address_version_for_network(network_name: str) -> int:
    """Single-sig address version for a network name."""
    if network_name == "mainnet":
        return ADDRESS_VERSION_MAINNET_SINGLE_SIG
    return ADDRESS_VERSION_TESTNET_SINGLE_SIG


def public_key_to_address(public_key: str, network_name: str = "testnet") -> str:
    """Derive the single-sig (P2PKH) Stacks address for a public key.

    Args:
        public_key: Hex public key, compressed (33 bytes) or uncompressed (65 bytes)
        network_name: "mainnet" or "testnet"

    Returns:
        Stacks address (SP... on mainnet, ST... on testnet)
    """
    try:
        key_bytes = bytes.fromhex(public_key.removeprefix("0x"))
    except ValueError as e:
        raise AddressError(f"Public key is not valid hex: {e}") from e

    if len(key_bytes) not in (33, 65):
        raise AddressError(f"Invalid public key length: {len(key_bytes)} bytes")

    return c32_address(address_version_for_network(network_name), hash160(key_bytes))
