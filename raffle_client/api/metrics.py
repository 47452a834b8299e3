"""Metrics collection for the API client."""

from dataclasses import dataclass, field
from typing import ClassVar

from raffle_client.api.models import TransportErrorClass


@dataclass
class ApiMetrics:
    """Metrics for API calls and session renewal.

    Singleton class that tracks request counts by status, retries,
    transport failures, refresh cycles and forced logouts.
    """

    api_requests_total: dict[int, int] = field(default_factory=dict)
    api_retry_total: int = 0
    api_network_failures_total: dict[str, int] = field(default_factory=dict)
    api_duration_ms_total: float = 0.0
    api_call_count: int = 0
    refresh_started_total: int = 0
    refresh_succeeded_total: int = 0
    refresh_failed_total: int = 0
    forced_logout_total: int = 0

    _instance: ClassVar["ApiMetrics | None"] = None

    @classmethod
    def get_instance(cls) -> "ApiMetrics":
        """Get singleton metrics instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset metrics (primarily for testing)."""
        cls._instance = None

    def record_response(self, status_code: int) -> None:
        """Record a response received from the backend.

        Args:
            status_code: HTTP status code.
        """
        self.api_requests_total[status_code] = (
            self.api_requests_total.get(status_code, 0) + 1
        )

    def record_retry(self) -> None:
        """Record a retry attempt."""
        self.api_retry_total += 1

    def record_network_failure(self, error_class: TransportErrorClass) -> None:
        """Record a transport failure.

        Args:
            error_class: Classification of the failure.
        """
        key = error_class.value
        self.api_network_failures_total[key] = (
            self.api_network_failures_total.get(key, 0) + 1
        )

    def record_call(self, duration_ms: float) -> None:
        """Record a completed call (all attempts included).

        Args:
            duration_ms: Duration in milliseconds.
        """
        self.api_call_count += 1
        self.api_duration_ms_total += duration_ms

    def record_refresh_started(self) -> None:
        """Record the start of a refresh cycle."""
        self.refresh_started_total += 1

    def record_refresh_succeeded(self) -> None:
        """Record a successful refresh cycle."""
        self.refresh_succeeded_total += 1

    def record_refresh_failed(self) -> None:
        """Record a failed refresh cycle."""
        self.refresh_failed_total += 1

    def record_forced_logout(self) -> None:
        """Record a forced logout."""
        self.forced_logout_total += 1

    def to_dict(self) -> dict[str, int | float | dict[str, int] | dict[int, int]]:
        """Convert metrics to dictionary.

        Returns:
            Dictionary of metric name to value.
        """
        return {
            "api_requests_total": dict(self.api_requests_total),
            "api_retry_total": self.api_retry_total,
            "api_network_failures_total": dict(self.api_network_failures_total),
            "api_duration_ms_total": self.api_duration_ms_total,
            "api_call_count": self.api_call_count,
            "refresh_started_total": self.refresh_started_total,
            "refresh_succeeded_total": self.refresh_succeeded_total,
            "refresh_failed_total": self.refresh_failed_total,
            "forced_logout_total": self.forced_logout_total,
        }

    @property
    def avg_duration_ms(self) -> float:
        """Calculate average call duration.

        Returns:
            Average duration in milliseconds.
        """
        if self.api_call_count == 0:
            return 0.0
        return self.api_duration_ms_total / self.api_call_count
