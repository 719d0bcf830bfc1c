"""
State block hashing and signing.

The block hash is blake2b-256 over the state-block preamble followed by the
account key, previous hash, representative key, 16-byte big-endian balance
and link. The signature is ed25519 (blake2b variant) over that hash, made
with the ``ed25519_blake2b`` extension.
"""

from __future__ import annotations

import hashlib
import logging
import re

import ed25519_blake2b

from nano_mcp.accounts import address_to_public_key
from nano_mcp.models import SignedBlock, UnsignedBlockFields

logger = logging.getLogger(__name__)

STATE_BLOCK_PREAMBLE = bytes(31) + b"\x06"
BLOCK_SUBTYPES = ("open", "receive", "send")
MAX_BALANCE = (1 << 128) - 1
PRIVATE_KEY_REGEX = re.compile(r"^[0-9A-Fa-f]{64}$")
WORK_REGEX = re.compile(r"^[0-9A-Fa-f]{16}$")
HASH_REGEX = re.compile(r"^[0-9A-Fa-f]{64}$")


class SigningError(Exception):
    """Raised when a block cannot be signed with the given inputs."""


def _signing_key(private_key: str) -> ed25519_blake2b.SigningKey:
    if not isinstance(private_key, str) or not PRIVATE_KEY_REGEX.fullmatch(private_key):
        raise SigningError("Private key must be 64 hexadecimal characters.")
    return ed25519_blake2b.SigningKey(bytes.fromhex(private_key))


def derive_public_key(private_key: str) -> str:
    """Return the upper-case hex public key for a 32-byte hex private key."""
    verifying_key = _signing_key(private_key).get_verifying_key()
    return verifying_key.to_bytes().hex().upper()


def hash_state_block(fields: UnsignedBlockFields) -> str:
    """Compute the upper-case hex hash of a state block."""
    if not 0 <= fields.balance <= MAX_BALANCE:
        raise SigningError(f"Balance out of range: {fields.balance}")
    for label, value in (("previous", fields.previous), ("link", fields.link)):
        if not HASH_REGEX.fullmatch(value or ""):
            raise SigningError(f"Block {label} must be 64 hexadecimal characters.")
    try:
        account_key = address_to_public_key(fields.account)
        representative_key = address_to_public_key(fields.representative)
    except ValueError as exc:
        raise SigningError(str(exc)) from exc

    digest = hashlib.blake2b(digest_size=32)
    digest.update(STATE_BLOCK_PREAMBLE)
    digest.update(bytes.fromhex(account_key))
    digest.update(bytes.fromhex(fields.previous))
    digest.update(bytes.fromhex(representative_key))
    digest.update(fields.balance.to_bytes(16, "big"))
    digest.update(bytes.fromhex(fields.link))
    return digest.hexdigest().upper()


def sign_state_block(
    fields: UnsignedBlockFields,
    private_key: str,
    *,
    work: str,
    subtype: str,
) -> SignedBlock:
    """
    Sign ``fields`` with ``private_key`` and attach ``work``.

    Deterministic: identical inputs always produce the same signature.

    Raises:
        SigningError: on an unknown subtype, malformed work or key, or a key
            that does not belong to ``fields.account``.
    """
    if subtype not in BLOCK_SUBTYPES:
        raise SigningError(f"Unsupported block subtype: {subtype}")
    if not isinstance(work, str) or not WORK_REGEX.fullmatch(work):
        raise SigningError("Work must be 16 hexadecimal characters.")

    signing_key = _signing_key(private_key)
    public_key = signing_key.get_verifying_key().to_bytes().hex().upper()
    try:
        account_key = address_to_public_key(fields.account)
    except ValueError as exc:
        raise SigningError(str(exc)) from exc
    if public_key != account_key:
        raise SigningError("Private key does not belong to the block account.")

    block_hash = hash_state_block(fields)
    signature = signing_key.sign(bytes.fromhex(block_hash)).hex().upper()
    logger.debug("signed %s block %s", subtype, block_hash)
    return SignedBlock(
        fields=fields,
        subtype=subtype,
        hash=block_hash,
        signature=signature,
        work=work.lower(),
    )
