"""Metrics collection for the request pipeline."""

from dataclasses import dataclass, field
from typing import ClassVar

from zfetch.errors import ErrorKind


@dataclass
class ClientMetrics:
    """Metrics for HTTP client operations.

    Singleton class that tracks request counts, cache hits, retries,
    failures and queue pressure.
    """

    http_requests_total: dict[int, int] = field(default_factory=dict)
    http_cache_hits_total: int = 0
    http_cache_misses_total: int = 0
    http_retry_total: int = 0
    http_failures_total: dict[str, int] = field(default_factory=dict)
    http_duration_ms_total: float = 0.0
    http_request_count: int = 0
    hook_failures_total: int = 0
    queue_peak_active: int = 0

    _instance: ClassVar["ClientMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "ClientMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_request(self, status_code: int) -> None:
        """Record a completed HTTP exchange.

        Args:
            status_code: HTTP status code.
        """
        self.http_requests_total[status_code] = (
            self.http_requests_total.get(status_code, 0) + 1
        )
        self.http_request_count += 1

    def record_cache_hit(self) -> None:
        """Record a response served from cache."""
        self.http_cache_hits_total += 1

    def record_cache_miss(self) -> None:
        """Record a cacheable request that went to the network."""
        self.http_cache_misses_total += 1

    def record_retry(self) -> None:
        """Record a retry attempt."""
        self.http_retry_total += 1

    def record_failure(self, kind: ErrorKind) -> None:
        """Record a request failure.

        Args:
            kind: Classification of the failure.
        """
        key = kind.value
        self.http_failures_total[key] = self.http_failures_total.get(key, 0) + 1

    def record_hook_failure(self) -> None:
        """Record a skipped hook."""
        self.hook_failures_total += 1

    def record_duration(self, duration_ms: float) -> None:
        """Record request duration.

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.http_duration_ms_total += duration_ms

    def record_active(self, active_count: int) -> None:
        """Track the highest number of simultaneously running tasks.

        Args:
            active_count: Current number of running tasks.
        """
        self.queue_peak_active = max(self.queue_peak_active, active_count)

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "http_requests_total": dict(self.http_requests_total),
            "http_cache_hits_total": self.http_cache_hits_total,
            "http_cache_misses_total": self.http_cache_misses_total,
            "http_retry_total": self.http_retry_total,
            "http_failures_total": dict(self.http_failures_total),
            "http_duration_ms_total": self.http_duration_ms_total,
            "http_request_count": self.http_request_count,
            "hook_failures_total": self.hook_failures_total,
            "queue_peak_active": self.queue_peak_active,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average request duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.http_request_count == 0:
            return 0.0
        return self.http_duration_ms_total / self.http_request_count
