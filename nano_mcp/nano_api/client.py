"""
Thin HTTP client for the Nano node JSON action API.

Every call is a POST of ``{"action": ..., **params}`` to the configured node.
Transport failures, non-2xx statuses and ``error`` fields in the body are
mapped to internal exceptions that the tool layer turns into caller-facing
messages. Ledger-reported messages are kept verbatim.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

from nano_mcp.config import NanoConfig, default_config

logger = logging.getLogger(__name__)


class NanoApiError(Exception):
    """Base exception for ledger node errors."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class InvalidAddressError(NanoApiError):
    """Raised when the node rejects an account identifier."""


class AccountNotFoundError(NanoApiError):
    """Raised when an account has no blocks on the ledger."""


class UnauthorizedError(NanoApiError):
    """Raised when the node rejects the request due to a missing or bad key."""


class NodeUnreachableError(NanoApiError):
    """Raised when no configured node can be reached."""


class WorkGenerationError(NanoApiError):
    """Raised when the node answers work_generate without a work value."""


def _normalize_url(url: str) -> str:
    return url.rstrip("/")


@dataclass(slots=True)
class _NodeEntry:
    base_url: str
    client: Optional[httpx.AsyncClient] = None
    last_failure: Optional[float] = None


class NodePool:
    """Manage multiple ledger nodes with primary-first failover."""

    def __init__(
        self,
        nodes: List[str],
        timeout: float,
        *,
        cooldown_seconds: float = 30.0,
    ) -> None:
        self._entries: List[_NodeEntry] = [_NodeEntry(base_url=node) for node in nodes]
        self._timeout = timeout
        self._cooldown_seconds = cooldown_seconds
        self._primary_url = nodes[0] if nodes else None

    def _in_cooldown(self, entry: _NodeEntry) -> bool:
        if entry.last_failure is None:
            return False
        return (time.monotonic() - entry.last_failure) < self._cooldown_seconds

    def _ensure_client(self, entry: _NodeEntry) -> httpx.AsyncClient:
        if entry.client is None:
            entry.client = httpx.AsyncClient(base_url=entry.base_url, timeout=self._timeout)
        return entry.client

    def get_candidates(self) -> List[Tuple[httpx.AsyncClient, _NodeEntry]]:
        """Return clients to try in priority order, skipping nodes in cooldown."""
        candidates = [
            (self._ensure_client(entry), entry)
            for entry in self._entries
            if not self._in_cooldown(entry)
        ]
        if not candidates and self._entries:
            primary = self._entries[0]
            candidates.append((self._ensure_client(primary), primary))
        return candidates

    def report_failure(self, base_url: str) -> None:
        for entry in self._entries:
            if entry.base_url == base_url:
                entry.last_failure = time.monotonic()
                break

    def report_success(self, base_url: str) -> None:
        for entry in self._entries:
            if entry.base_url == base_url:
                entry.last_failure = None
                break

    def is_trusted(self, base_url: str) -> bool:
        return base_url == self._primary_url

    async def aclose(self) -> None:
        for entry in self._entries:
            if entry.client is not None:
                await entry.client.aclose()
                entry.client = None


class NanoRpcClient:
    """Async client for the ledger node actions used by the MCP methods."""

    def __init__(
        self,
        config: NanoConfig | None = None,
        *,
        async_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.config = config or default_config
        self._client: Optional[httpx.AsyncClient] = async_client
        self._owns_client = async_client is None
        self._node_pool = self._build_node_pool()

    def _build_node_pool(self) -> Optional[NodePool]:
        if not self.config.allow_public_fallback or self._client is not None:
            return None
        ordered: List[str] = []
        seen: set[str] = set()
        for url in [_normalize_url(self.config.rpc_url), *map(_normalize_url, self.config.public_nodes)]:
            if not url or url in seen:
                continue
            ordered.append(url)
            seen.add(url)
        if len(ordered) <= 1:
            return None
        return NodePool(
            ordered,
            timeout=self.config.timeout,
            cooldown_seconds=self.config.fallback_cooldown_seconds,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.rpc_url, timeout=self.config.timeout
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._node_pool is not None:
            await self._node_pool.aclose()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _map_error(self, message: Optional[str], status_code: int) -> NanoApiError:
        text = (message or "").strip()
        lowered = text.lower()
        if "account not found" in lowered:
            return AccountNotFoundError(text, code="ACCOUNT_NOT_FOUND", status_code=status_code)
        if "bad account number" in lowered or "invalid address" in lowered:
            return InvalidAddressError(text, code="INVALID_ADDRESS", status_code=status_code)
        if status_code in {401, 403}:
            return UnauthorizedError(
                text or "Unauthorized or RPC key required.",
                code="UNAUTHORIZED",
                status_code=status_code,
            )
        if text:
            return NanoApiError(text, status_code=status_code)
        return NanoApiError(f"HTTP error {status_code} from node.", status_code=status_code)

    def _build_headers(self, *, trusted: bool) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if trusted and self.config.api_key:
            headers["Authorization"] = self.config.api_key
        return headers

    def _process_response(self, response: httpx.Response) -> Dict[str, Any]:
        data: Any
        try:
            data = response.json()
        except ValueError:
            data = None

        error_field: Optional[str] = None
        if isinstance(data, dict) and data.get("error") is not None:
            error_field = str(data["error"])

        if response.status_code >= 400:
            raise self._map_error(error_field, response.status_code)

        if not isinstance(data, dict):
            raise NanoApiError("Unexpected response from node.", status_code=response.status_code)

        if error_field is not None:
            raise self._map_error(error_field, response.status_code)

        return data

    async def _request(self, action: str, params: Dict[str, Any]) -> Dict[str, Any]:
        body = {"action": action, **params}
        logger.debug("rpc action=%s", action)
        if self._node_pool is None:
            return await self._request_single(action, body)
        return await self._request_with_pool(action, body)

    async def _request_single(self, action: str, body: Dict[str, Any]) -> Dict[str, Any]:
        client = await self._get_client()
        headers = self._build_headers(trusted=True)
        try:
            response = await client.post("", json=body, headers=headers)
        except httpx.RequestError as exc:
            logger.warning("Nano node unreachable for action %s", action)
            raise NodeUnreachableError(f"Node unreachable: {exc}") from exc
        return self._process_response(response)

    async def _request_with_pool(self, action: str, body: Dict[str, Any]) -> Dict[str, Any]:
        last_exc: Optional[Exception] = None
        assert self._node_pool is not None
        for client, entry in self._node_pool.get_candidates():
            headers = self._build_headers(trusted=self._node_pool.is_trusted(entry.base_url))
            try:
                response = await client.post("", json=body, headers=headers)
            except httpx.RequestError as exc:
                logger.warning("Nano node unreachable for action %s via %s", action, entry.base_url)
                self._node_pool.report_failure(entry.base_url)
                last_exc = exc
                continue
            self._node_pool.report_success(entry.base_url)
            return self._process_response(response)

        raise NodeUnreachableError("Node unreachable") from last_exc

    async def call(self, action: str, **params: Any) -> Dict[str, Any]:
        """POST a raw action to the node and return the parsed JSON body."""
        return await self._request(action, params)

    async def fetch_account_info(self, address: str) -> Dict[str, Any]:
        """Retrieve frontier, representative and balance for an account."""
        return await self._request(
            "account_info",
            {"account": address, "representative": "true", "include_confirmed": "true"},
        )

    async def fetch_account_balance(self, address: str) -> Dict[str, Any]:
        """Retrieve confirmed balance and receivable amounts for an account."""
        return await self._request(
            "account_balance", {"account": address, "include_only_confirmed": "true"}
        )

    async def fetch_pending(
        self,
        address: str,
        *,
        count: Optional[int] = None,
        threshold: Optional[str] = None,
    ) -> Dict[str, Any]:
        """List pending (receivable) blocks for an account, with amount and source."""
        params: Dict[str, Any] = {
            "account": address,
            "count": str(count if count is not None else self.config.pending_count),
            "threshold": threshold if threshold is not None else self.config.pending_threshold,
            "source": "true",
            "include_only_confirmed": "true",
        }
        return await self._request("pending", params)

    async def fetch_block_info(self, block_hash: str) -> Dict[str, Any]:
        """Retrieve the detail of a single block by hash."""
        data = await self._request(
            "blocks_info", {"hashes": [block_hash], "json_block": "true", "source": "true"}
        )
        blocks = data.get("blocks")
        if isinstance(blocks, dict):
            info = blocks.get(block_hash) or blocks.get(block_hash.upper()) or blocks.get(block_hash.lower())
            if isinstance(info, dict):
                return info
        raise NanoApiError("Block not found")

    async def generate_work(self, work_hash: str, difficulty: str) -> str:
        """Ask the node for a proof-of-work nonce over ``work_hash``."""
        data = await self._request("work_generate", {"hash": work_hash, "difficulty": difficulty})
        work = data.get("work")
        if not isinstance(work, str) or not work:
            raise WorkGenerationError("Work generation failed: no work returned")
        return work

    async def process_block(self, block: Dict[str, Any], subtype: str) -> str:
        """Publish a signed block and return its hash."""
        data = await self._request(
            "process", {"json_block": "true", "subtype": subtype, "block": block}
        )
        block_hash = data.get("hash")
        if not isinstance(block_hash, str) or not block_hash:
            raise NanoApiError("Node did not return a block hash")
        return block_hash

    async def fetch_block_count(self) -> Dict[str, Any]:
        """Retrieve ledger block counts."""
        return await self._request("block_count", {})

    async def fetch_version(self) -> Dict[str, Any]:
        """Retrieve node vendor and protocol versions."""
        return await self._request("version", {})


default_client = NanoRpcClient()
