"""HTTP client wrappers for the Nano node RPC API."""

from .client import (
    AccountNotFoundError,
    InvalidAddressError,
    NanoApiError,
    NanoRpcClient,
    NodeUnreachableError,
    UnauthorizedError,
    WorkGenerationError,
    default_client,
)

__all__ = [
    "NanoRpcClient",
    "NanoApiError",
    "InvalidAddressError",
    "AccountNotFoundError",
    "UnauthorizedError",
    "NodeUnreachableError",
    "WorkGenerationError",
    "default_client",
]
