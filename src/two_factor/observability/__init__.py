"""Two-factor observability helpers for metrics and tracing.

``AuthenticationSession`` reports through these helpers on every
challenge and verification. Metrics land in the default Prometheus
collector registry; spans go to whatever OpenTelemetry tracer provider
the host application installed.

Usage:
    ```python
    from two_factor.observability import TwoFactorMetrics, TwoFactorTracing

    with TwoFactorTracing.verify_span("totp", user_id="user-123") as span:
        with TwoFactorMetrics.operation("verify", provider="totp"):
            accepted = await provider.verify("user-123", code)
        TwoFactorTracing.set_result(span, accepted)
    ```
"""

from __future__ import annotations

from .metrics import TwoFactorMetricLabels, TwoFactorMetrics, record_replay
from .tracing import TRACER_NAME, TwoFactorTracing

__all__: list[str] = [
    # Metrics
    "TwoFactorMetricLabels",
    "TwoFactorMetrics",
    "record_replay",
    # Tracing
    "TwoFactorTracing",
    "TRACER_NAME",
]
