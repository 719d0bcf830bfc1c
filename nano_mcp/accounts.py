"""
Account address codec.

A Nano address is ``nano_`` followed by 52 base-32 characters carrying the
32-byte public key (left-padded with four zero bits) and 8 characters carrying
a 5-byte blake2b checksum of the key in reversed byte order.
"""

from __future__ import annotations

import hashlib
import re

ACCOUNT_ALPHABET = "13456789abcdefghijkmnopqrstuwxyz"
ADDRESS_PREFIXES = ("nano_", "xrb_")
ADDRESS_REGEX = re.compile(r"^(nano|xrb)_[13][13456789abcdefghijkmnopqrstuwxyz]{59}$")
PUBLIC_KEY_REGEX = re.compile(r"^[0-9A-Fa-f]{64}$")

_KEY_CHARS = 52
_CHECKSUM_CHARS = 8
_DECODE_MAP = {char: index for index, char in enumerate(ACCOUNT_ALPHABET)}


def _encode(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        chars.append(ACCOUNT_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def _decode(text: str) -> int:
    value = 0
    for char in text:
        value = (value << 5) | _DECODE_MAP[char]
    return value


def _checksum(key_bytes: bytes) -> bytes:
    return hashlib.blake2b(key_bytes, digest_size=5).digest()[::-1]


def public_key_to_address(public_key: str, *, prefix: str = "nano_") -> str:
    """Encode a 64-hex-character public key as an account address."""
    if not PUBLIC_KEY_REGEX.fullmatch(public_key or ""):
        raise ValueError("Public key must be 64 hexadecimal characters.")
    key_bytes = bytes.fromhex(public_key)
    key_part = _encode(int.from_bytes(key_bytes, "big"), _KEY_CHARS)
    checksum_part = _encode(int.from_bytes(_checksum(key_bytes), "big"), _CHECKSUM_CHARS)
    return f"{prefix}{key_part}{checksum_part}"


def address_to_public_key(address: str) -> str:
    """
    Decode an account address to its upper-case hex public key.

    Raises:
        ValueError: if the address is malformed or its checksum does not match.
    """
    if not isinstance(address, str) or not ADDRESS_REGEX.fullmatch(address.strip()):
        raise ValueError(f"Invalid Nano address: {address!r}")
    body = address.strip().split("_", 1)[1]
    key_bytes = _decode(body[:_KEY_CHARS]).to_bytes(32, "big")
    expected = _decode(body[_KEY_CHARS:]).to_bytes(5, "big")
    if _checksum(key_bytes) != expected:
        raise ValueError(f"Invalid Nano address checksum: {address}")
    return key_bytes.hex().upper()


def normalize_address(address: str) -> str:
    """Return the ``nano_`` form of an address (legacy ``xrb_`` is accepted)."""
    address = address.strip()
    if address.startswith("xrb_"):
        return "nano_" + address[len("xrb_"):]
    return address
