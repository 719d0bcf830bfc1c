"""
Configuration helpers for the Nano MCP server.

This module centralizes RPC node selection, API key loading, default timeouts,
work difficulty thresholds and safety limits. No secrets are stored in the
repository; the RPC key is read from environment or a local file if present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

# Default connection settings
DEFAULT_RPC_URL = os.getenv("NANO_RPC_URL", "https://rpc.nano.to")


def _load_timeout() -> float:
    raw_timeout = os.getenv("NANO_HTTP_TIMEOUT")
    if raw_timeout:
        try:
            return float(raw_timeout)
        except ValueError:
            return 30.0
    return 30.0


def _parse_public_nodes(raw: Optional[str]) -> List[str]:
    """Split a comma-separated list of node URLs, dropping blanks."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y"}


def _load_rate_limit() -> float:
    raw = os.getenv("NANO_MCP_RATE_LIMIT_QPS")
    if raw:
        try:
            return float(raw)
        except ValueError:
            return 5.0
    return 5.0


DEFAULT_TIMEOUT = _load_timeout()
DEFAULT_PUBLIC_NODES = _parse_public_nodes(os.getenv("NANO_PUBLIC_NODES"))
DEFAULT_ALLOW_PUBLIC_FALLBACK = _env_flag("NANO_ALLOW_PUBLIC_FALLBACK")
DEFAULT_REPRESENTATIVE = os.getenv("NANO_DEFAULT_REPRESENTATIVE") or None

# RPC key handling
API_KEY_ENV_VAR = "NANO_RPC_KEY"
API_KEY_FILE_ENV_VAR = "NANO_RPC_KEY_FILE"
DEFAULT_API_KEY_FILE = "rpckey.txt"

# Work thresholds (ledger-defined, hex strings as the node expects them)
OPEN_WORK_DIFFICULTY = "fffffe0000000000"
RECEIVE_WORK_DIFFICULTY = "fffffff800000000"
SEND_WORK_DIFFICULTY = "fffffff800000000"

# Safety limits
MAX_PENDING_BLOCKS = 100
DEFAULT_PENDING_THRESHOLD = "1"
DEFAULT_FALLBACK_COOLDOWN = 30.0
DEFAULT_RATE_LIMIT_QPS = _load_rate_limit()
LOG_LEVEL = os.getenv("NANO_MCP_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("NANO_MCP_LOG_FORMAT", "json")  # json or plain
SERVER_HOST = os.getenv("NANO_MCP_HOST", "127.0.0.1")


def _load_port() -> int:
    raw = os.getenv("NANO_MCP_PORT")
    if raw and raw.isdigit():
        return int(raw)
    return 8000


SERVER_PORT = _load_port()


def load_api_key() -> Optional[str]:
    """
    Load the RPC key from environment or a local file.

    Returns:
        The key string if available, otherwise None. The key is never logged
        or returned to callers.
    """
    env_key = os.getenv(API_KEY_ENV_VAR)
    if env_key:
        return env_key.strip()

    key_path = os.getenv(API_KEY_FILE_ENV_VAR, DEFAULT_API_KEY_FILE)
    if key_path:
        path = Path(key_path)
        if path.is_file():
            return path.read_text(encoding="utf-8").strip() or None

    return None


@dataclass(slots=True)
class NanoConfig:
    """Runtime configuration for ledger node access."""

    rpc_url: str = DEFAULT_RPC_URL
    timeout: float = DEFAULT_TIMEOUT
    api_key: Optional[str] = load_api_key()
    public_nodes: List[str] = field(default_factory=lambda: list(DEFAULT_PUBLIC_NODES))
    allow_public_fallback: bool = DEFAULT_ALLOW_PUBLIC_FALLBACK
    fallback_cooldown_seconds: float = DEFAULT_FALLBACK_COOLDOWN
    default_representative: Optional[str] = DEFAULT_REPRESENTATIVE
    open_difficulty: str = OPEN_WORK_DIFFICULTY
    receive_difficulty: str = RECEIVE_WORK_DIFFICULTY
    send_difficulty: str = SEND_WORK_DIFFICULTY
    pending_count: int = MAX_PENDING_BLOCKS
    pending_threshold: str = DEFAULT_PENDING_THRESHOLD
    rate_limit_qps: float = DEFAULT_RATE_LIMIT_QPS
    log_level: str = LOG_LEVEL
    log_format: str = LOG_FORMAT
    per_method_rate_limits: dict[str, float] = field(default_factory=dict)
    host: str = SERVER_HOST
    port: int = SERVER_PORT


default_config = NanoConfig()
