"""Two-factor metrics helpers for Prometheus.

Usage:
    ```python
    from two_factor.observability import TwoFactorMetrics

    # Time a provider call
    with TwoFactorMetrics.operation("verify", provider="totp"):
        accepted = await provider.verify(user_id, code)

    # Count an audit event
    TwoFactorMetrics.record_event(event)
    ```
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any

from ..audit.events import TwoFactorEventType

_logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Generator

    from ..audit.events import TwoFactorAuditEvent


@dataclass(frozen=True)
class TwoFactorMetricLabels:
    """Standard labels for two-factor metrics."""

    provider: str = "unknown"
    operation: str = "unknown"
    result: str = "success"


class _TwoFactorMetricsRegistry:
    """Registry for two-factor Prometheus metrics.

    Metrics are created on first use, so importing the package never
    touches the default collector registry.
    """

    def __init__(self) -> None:
        self._histogram: Any = None
        self._counter: Any = None
        self._replay_counter: Any = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return

        from prometheus_client import Counter, Histogram

        self._histogram = Histogram(
            "two_factor_operation_duration_seconds",
            "Two-factor operation duration",
            ["provider", "operation"],
        )
        self._counter = Counter(
            "two_factor_operations_total",
            "Two-factor operation count",
            ["provider", "operation", "result"],
        )
        self._replay_counter = Counter(
            "two_factor_replay_detected_total",
            "Security key responses rejected for a non-advancing counter",
            ["provider"],
        )
        self._initialized = True

    @property
    def histogram(self) -> Any:
        self._ensure_initialized()
        return self._histogram

    @property
    def counter(self) -> Any:
        self._ensure_initialized()
        return self._counter

    @property
    def replay_counter(self) -> Any:
        self._ensure_initialized()
        return self._replay_counter


# Global registry instance
_registry = _TwoFactorMetricsRegistry()


class TwoFactorMetrics:
    """Helpers for recording two-factor operations.

    Failures to record a sample are logged at DEBUG and never reach the
    login flow.
    """

    @staticmethod
    @contextmanager
    def operation(
        operation: str,
        *,
        provider: str = "unknown",
    ) -> Generator[None, None, None]:
        """Context manager for timing a provider operation.

        Args:
            operation: Operation name (verify, challenge).
            provider: Provider key.

        Yields:
            Nothing.
        """
        result = "success"
        start = time.monotonic()

        try:
            yield
        except Exception:
            result = "error"
            raise
        finally:
            duration = time.monotonic() - start

            if _registry.histogram:
                try:
                    _registry.histogram.labels(
                        provider=provider,
                        operation=operation,
                    ).observe(duration)
                except Exception:
                    _logger.debug("Failed to record histogram")

            if _registry.counter:
                try:
                    _registry.counter.labels(
                        provider=provider,
                        operation=operation,
                        result=result,
                    ).inc()
                except Exception:
                    _logger.debug("Failed to record counter")

    @staticmethod
    def record_event(event: TwoFactorAuditEvent) -> None:
        """Count an audit event.

        Replay events also bump ``two_factor_replay_detected_total``.

        Args:
            event: The audit event to record.
        """
        labels = TwoFactorMetricLabels(
            provider=event.provider_key or "unknown",
            operation=event.event_type.value,
            result="success" if event.success else "failure",
        )

        if _registry.counter:
            try:
                _registry.counter.labels(**asdict(labels)).inc()
            except Exception:
                _logger.debug("Failed to record audit event metric")

        if event.event_type is TwoFactorEventType.REPLAY_DETECTED:
            record_replay(labels.provider)


def record_replay(provider: str = "challenge_key") -> None:
    """Record a replayed security key response."""
    if _registry.replay_counter:
        try:
            _registry.replay_counter.labels(provider=provider).inc()
        except Exception:
            _logger.debug("Failed to record replay counter")


__all__: list[str] = [
    "TwoFactorMetricLabels",
    "TwoFactorMetrics",
    "record_replay",
]
