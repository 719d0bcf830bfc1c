"""
Process-local counters served by ``/metrics``.

Tracks HTTP requests, per-method outcomes of the ledger dispatcher and the
blocks moved by the send and receive engines. Values reset on restart.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Dict

MAX_TRACKED_DURATIONS = 100


@dataclass(slots=True)
class MethodStats:
    success: int = 0
    error: int = 0


class MetricsRecorder:
    def __init__(self) -> None:
        self._lock = Lock()
        self._requests = 0
        self._rate_limited = 0
        # request id -> duration, oldest first
        self._durations: "OrderedDict[str, float]" = OrderedDict()
        self._methods: Dict[str, MethodStats] = {}
        self._blocks_received = 0
        self._blocks_failed = 0
        self._blocks_sent = 0

    def incr_request(self) -> None:
        with self._lock:
            self._requests += 1

    def incr_rate_limited(self) -> None:
        with self._lock:
            self._rate_limited += 1

    def record_duration(self, request_id: str, duration_ms: float) -> None:
        with self._lock:
            self._durations[request_id] = duration_ms
            self._durations.move_to_end(request_id)
            while len(self._durations) > MAX_TRACKED_DURATIONS:
                self._durations.popitem(last=False)

    def record_method(self, method: str, *, success: bool) -> None:
        """Count one dispatcher outcome; engine results with ``success: false`` count as errors."""
        with self._lock:
            stats = self._methods.setdefault(method, MethodStats())
            if success:
                stats.success += 1
            else:
                stats.error += 1

    def record_receive_batch(self, *, received: int, failed: int) -> None:
        with self._lock:
            self._blocks_received += received
            self._blocks_failed += failed

    def record_send(self) -> None:
        with self._lock:
            self._blocks_sent += 1

    def snapshot(self) -> Dict[str, object]:
        with self._lock:
            return {
                "requests": self._requests,
                "rate_limited": self._rate_limited,
                "method_success": {name: s.success for name, s in self._methods.items() if s.success},
                "method_error": {name: s.error for name, s in self._methods.items() if s.error},
                "blocks_received": self._blocks_received,
                "blocks_failed": self._blocks_failed,
                "blocks_sent": self._blocks_sent,
                "recent_request_durations_ms": dict(self._durations),
            }

    def reset(self) -> None:
        with self._lock:
            self._requests = 0
            self._rate_limited = 0
            self._durations.clear()
            self._methods.clear()
            self._blocks_received = 0
            self._blocks_failed = 0
            self._blocks_sent = 0


default_metrics = MetricsRecorder()
