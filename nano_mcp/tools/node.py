"""Node-related tools."""

from __future__ import annotations

from typing import Any, Dict

from nano_mcp.nano_api import default_client


async def get_block_count(*, client=default_client) -> Dict[str, str]:
    """Return the node's checked, unchecked and cemented block counts."""
    raw_counts = await client.fetch_block_count()
    return {
        "count": str(raw_counts.get("count", "0")),
        "unchecked": str(raw_counts.get("unchecked", "0")),
        "cemented": str(raw_counts.get("cemented", "0")),
    }


async def get_version(*, client=default_client) -> Dict[str, Any]:
    """Return node vendor, network and protocol version details."""
    raw_version = await client.fetch_version()
    return {
        key: raw_version.get(key)
        for key in ("rpc_version", "store_version", "protocol_version", "node_vendor", "network")
        if key in raw_version
    }
