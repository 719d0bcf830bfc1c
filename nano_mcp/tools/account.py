"""Account read tools: balance, account info and pending blocks."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from nano_mcp.config import NanoConfig, default_config
from nano_mcp.models import AccountState, PendingBlock
from nano_mcp.nano_api import AccountNotFoundError, NanoApiError, default_client
from nano_mcp.tools.validators import clamp_count, require_address
from nano_mcp.units import AmountError, parse_raw

logger = logging.getLogger(__name__)


def _raw_string(value: Any) -> str:
    """
    Normalize a raw amount field as a decimal string. Nodes return strings;
    a missing field reads as "0".
    """
    if value is None or value == "":
        return "0"
    try:
        return str(parse_raw(value if isinstance(value, int) else str(value)))
    except AmountError as exc:
        logger.warning("Unparseable raw amount from node: %r", value)
        raise NanoApiError(f"Unexpected amount from node: {value!r}") from exc


def parse_pending_blocks(payload: Any) -> List[PendingBlock]:
    """
    Normalize a ``pending`` response into ``PendingBlock`` values.

    Nodes answer with an empty string when nothing is pending, a list of
    hashes, a hash -> amount map, or a hash -> {amount, source} map depending
    on the options sent.
    """
    blocks = payload.get("blocks") if isinstance(payload, dict) else None
    if not blocks:
        return []

    pending: List[PendingBlock] = []
    if isinstance(blocks, list):
        for block_hash in blocks:
            if isinstance(block_hash, str):
                pending.append(PendingBlock(hash=block_hash))
        return pending

    if isinstance(blocks, dict):
        for block_hash, entry in blocks.items():
            if isinstance(entry, dict):
                pending.append(
                    PendingBlock(
                        hash=block_hash,
                        amount=int(_raw_string(entry.get("amount"))),
                        source=entry.get("source"),
                    )
                )
            else:
                pending.append(PendingBlock(hash=block_hash, amount=int(_raw_string(entry))))
    return pending


async def load_account_state(
    address: str,
    *,
    client=default_client,
    default_representative: Optional[str] = None,
) -> AccountState:
    """
    Read the account's current frontier, representative and balance.

    An account the node does not know yet is returned as unopened: frontier
    is the all-zero hash and the representative is ``default_representative``
    or the account itself.
    """
    try:
        info = await client.fetch_account_info(address)
    except AccountNotFoundError:
        return AccountState.unopened(address, default_representative)
    return account_state_from_info(address, info, default_representative)


def account_state_from_info(
    address: str, info: Dict[str, Any], default_representative: Optional[str] = None
) -> AccountState:
    """Build an ``AccountState`` from an ``account_info`` payload."""
    frontier = info.get("frontier")
    if not isinstance(frontier, str) or not frontier:
        return AccountState.unopened(address, default_representative)
    representative = info.get("representative") or default_representative or address
    return AccountState(
        address=address,
        frontier=frontier.upper(),
        representative=representative,
        balance=parse_raw(str(info.get("balance", "0"))),
    )


async def get_balance(address: str, *, client=default_client) -> Dict[str, str]:
    """
    Return confirmed balance and receivable amounts for an address, in raw.

    Raises:
        ValidationError: for a malformed address (no network call is made).
        NanoApiError: for transport or ledger-reported failures.
    """
    account = require_address(address)
    raw_balance = await client.fetch_account_balance(account)
    return {
        "balance": _raw_string(raw_balance.get("balance")),
        "pending": _raw_string(raw_balance.get("pending")),
        "receivable": _raw_string(raw_balance.get("receivable")),
    }


async def get_account_info(address: str, *, client=default_client) -> Dict[str, Any]:
    """Return the node's ``account_info`` payload unchanged."""
    account = require_address(address)
    return await client.fetch_account_info(account)


async def get_pending_blocks(
    address: str,
    count: Optional[int] = None,
    *,
    client=default_client,
    config: NanoConfig = default_config,
) -> Dict[str, Any]:
    """List pending blocks (hash, amount in raw, source) for an address."""
    account = require_address(address)
    limit = clamp_count(count, default=config.pending_count, max_value=config.pending_count)
    payload = await client.fetch_pending(account, count=limit, threshold=config.pending_threshold)
    return {"blocks": [block.as_dict() for block in parse_pending_blocks(payload)]}
