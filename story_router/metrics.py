"""Per-provider request metrics."""
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass
class ProviderMetrics:
    total_requests: int = 0
    successes: int = 0
    failures: int = 0
    total_response_time: float = 0.0
    last_used: Optional[datetime] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def success_rate(self) -> float:
        return self.successes / self.total_requests if self.total_requests else 0.0

    @property
    def average_response_time(self) -> float:
        return self.total_response_time / self.successes if self.successes else 0.0

    def record(self, success: bool, response_time: float) -> None:
        with self._lock:
            self.total_requests += 1
            if success:
                self.successes += 1
                self.total_response_time += response_time
            else:
                self.failures += 1
            self.last_used = datetime.now(timezone.utc)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total_requests": self.total_requests,
                "successes": self.successes,
                "failures": self.failures,
                "success_rate": self.success_rate,
                "average_response_time": self.average_response_time,
                "total_response_time": self.total_response_time,
                "last_used": self.last_used.isoformat() if self.last_used else None,
            }


class MetricsStore:
    """Counters keyed by provider name, each guarded by its own lock."""

    def __init__(self) -> None:
        self._metrics: Dict[str, ProviderMetrics] = {}
        self._create_lock = threading.Lock()

    def _entry(self, provider_name: str) -> ProviderMetrics:
        metrics = self._metrics.get(provider_name)
        if metrics is None:
            with self._create_lock:
                metrics = self._metrics.setdefault(provider_name, ProviderMetrics())
        return metrics

    def record_success(self, provider_name: str, response_time: float) -> None:
        self._entry(provider_name).record(True, response_time)

    def record_failure(self, provider_name: str, response_time: float = 0.0) -> None:
        self._entry(provider_name).record(False, response_time)

    def get(self, provider_name: str) -> Optional[ProviderMetrics]:
        return self._metrics.get(provider_name)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        return {name: metrics.snapshot() for name, metrics in list(self._metrics.items())}

    def clear(self) -> None:
        with self._create_lock:
            self._metrics = {}

    def __len__(self) -> int:
        return len(self._metrics)
