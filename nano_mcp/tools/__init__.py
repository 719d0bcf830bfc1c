"""Agent-facing ledger method implementations."""

from .account import get_account_info, get_balance, get_pending_blocks
from .convert import convert_from_display_unit, convert_to_display_unit
from .node import get_block_count, get_version
from .receive import initialize_account, receive_all_pending, receive_pending_block
from .send import send_transaction
from . import validators

__all__ = [
    "get_balance",
    "get_account_info",
    "get_pending_blocks",
    "convert_to_display_unit",
    "convert_from_display_unit",
    "get_block_count",
    "get_version",
    "receive_all_pending",
    "receive_pending_block",
    "initialize_account",
    "send_transaction",
    "validators",
]
