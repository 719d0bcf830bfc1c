"""
Nano MCP server package.

This package exposes ledger operations (balances, account info, unit
conversion, send and pending-block receive) to agents through a uniform
method-dispatch interface backed by a Nano node's JSON RPC. See DESIGN.md for
full details.
"""

__all__ = ["config"]
