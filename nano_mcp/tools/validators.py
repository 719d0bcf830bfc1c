"""Shared validation helpers for Nano MCP tools."""

from __future__ import annotations

import re
from typing import Any, Optional

from nano_mcp.accounts import ADDRESS_REGEX, address_to_public_key, normalize_address

HASH_REGEX = re.compile(r"^[0-9A-Fa-f]{64}$")
PRIVATE_KEY_REGEX = HASH_REGEX


class ValidationError(ValueError):
    """Raised for malformed input detected before any network call."""


def is_valid_nano_address(address: Optional[str]) -> bool:
    """Format and checksum validation for Nano addresses."""
    if not address or not isinstance(address, str):
        return False
    try:
        address_to_public_key(address)
    except ValueError:
        return False
    return True


def is_valid_block_hash(value: Optional[str]) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(HASH_REGEX.fullmatch(value.strip()))


def require_address(address: Any, *, field: str = "address") -> str:
    """Return the normalized address or raise ``ValidationError``."""
    if not isinstance(address, str) or not ADDRESS_REGEX.fullmatch(address.strip()):
        raise ValidationError(f"Invalid Nano address for {field}: {address!r}")
    if not is_valid_nano_address(address):
        raise ValidationError(f"Invalid Nano address checksum for {field}: {address}")
    return normalize_address(address)


def require_block_hash(value: Any, *, field: str = "blockHash") -> str:
    if not isinstance(value, str) or not is_valid_block_hash(value):
        raise ValidationError(f"Invalid block hash for {field}: expected 64 hexadecimal characters.")
    return value.strip().upper()


def require_private_key(value: Any) -> str:
    # Never echo the key back in the message.
    if not isinstance(value, str) or not PRIVATE_KEY_REGEX.fullmatch(value.strip()):
        raise ValidationError("Invalid private key: expected 64 hexadecimal characters.")
    return value.strip()


def clamp_count(value: Optional[int], *, default: int, max_value: int) -> int:
    """Clamp count-style integers to configured bounds."""
    if value is None:
        return default
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    if parsed <= 0:
        return default
    return min(parsed, max_value)
