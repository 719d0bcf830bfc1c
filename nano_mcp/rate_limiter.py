"""
Token-bucket throttling for the ledger methods.

Each method name gets its own bucket the first time it is called. Signing
methods such as ``sendTransaction`` can be given a slower rate through
``NanoConfig.per_method_rate_limits`` without touching the read-only
ones. State lives in this process only.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional


@dataclass(slots=True)
class TokenBucket:
    """Refills ``rate`` tokens per second, holding at most ``capacity``."""

    rate: float
    capacity: float
    tokens: float = field(init=False, default=0.0)
    updated: float = field(init=False, default_factory=time.monotonic)
    _lock: asyncio.Lock = field(init=False, repr=False, default_factory=asyncio.Lock)

    def __post_init__(self) -> None:
        self.tokens = self.capacity

    def _refill(self, now: float) -> None:
        self.tokens = min(self.capacity, self.tokens + (now - self.updated) * self.rate)
        self.updated = now

    async def consume(self, amount: float = 1.0) -> bool:
        async with self._lock:
            self._refill(time.monotonic())
            if self.tokens < amount:
                return False
            self.tokens -= amount
            return True


class RateLimiter:
    def __init__(self, rate_per_sec: float, burst: Optional[float] = None) -> None:
        # Capacity below one token would reject every call at fractional rates.
        capacity = max(1.0, burst if burst is not None else rate_per_sec)
        self.bucket = TokenBucket(rate_per_sec, capacity)

    async def allow(self) -> bool:
        return await self.bucket.consume()


class PerKeyRateLimiter:
    """
    Buckets keyed by method name, created on first use.

    ``per_key`` maps a method name to its own rate, which also serves as that
    method's burst. Every other method shares ``rate_per_sec`` / ``burst``.
    """

    def __init__(
        self,
        rate_per_sec: float,
        burst: Optional[float] = None,
        per_key: Optional[Mapping[str, float]] = None,
    ) -> None:
        self.rate = rate_per_sec
        self.burst = burst if burst is not None else rate_per_sec
        self.per_key: Dict[str, float] = dict(per_key or {})
        self._limiters: Dict[str, RateLimiter] = {}
        self._lock = asyncio.Lock()

    def _new_limiter(self, key: str) -> RateLimiter:
        if key in self.per_key:
            rate = self.per_key[key]
            return RateLimiter(rate, rate)
        return RateLimiter(self.rate, self.burst)

    async def allow(self, key: str) -> bool:
        async with self._lock:
            if key not in self._limiters:
                self._limiters[key] = self._new_limiter(key)
            limiter = self._limiters[key]
        return await limiter.allow()

    def reset(self) -> None:
        """Forget every bucket; the next call per method starts full."""
        self._limiters.clear()
