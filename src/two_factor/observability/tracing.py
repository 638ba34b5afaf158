"""Two-factor tracing helpers for OpenTelemetry.

Without a configured SDK the OpenTelemetry API hands out non-recording
spans, so these helpers cost next to nothing until the host application
installs a tracer provider.

Usage:
    ```python
    from two_factor.observability import TwoFactorTracing

    with TwoFactorTracing.verify_span("totp", user_id="user-123") as span:
        accepted = await provider.verify("user-123", code)
        TwoFactorTracing.set_result(span, accepted)
    ```
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Generator

TRACER_NAME = "two-factor-core"


class _TracerRegistry:
    """Lazy tracer initialization."""

    def __init__(self) -> None:
        self._tracer: Any = None
        self._initialized = False

    def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        self._tracer = trace.get_tracer(TRACER_NAME)
        self._initialized = True

    @property
    def tracer(self) -> Any:
        self._ensure_initialized()
        return self._tracer


_registry = _TracerRegistry()


class TwoFactorTracing:
    """Context managers for spans around two-factor operations."""

    @staticmethod
    @contextmanager
    def span(
        operation: str,
        *,
        provider: str = "unknown",
        user_id: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[Any, None, None]:
        """Context manager for a traced two-factor operation.

        Exceptions are recorded on the span and re-raised.

        Args:
            operation: Operation name (verify, challenge).
            provider: Provider key.
            user_id: User the operation concerns.
            attributes: Additional span attributes.

        Yields:
            The current span.
        """
        span_name = f"two_factor.{operation}"
        with _registry.tracer.start_as_current_span(span_name) as span:
            try:
                span.set_attribute("two_factor.operation", operation)
                span.set_attribute("two_factor.provider", provider)
                if user_id is not None:
                    span.set_attribute("two_factor.user_id", user_id)

                if attributes:
                    for key, value in attributes.items():
                        span.set_attribute(key, str(value))

                yield span

            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise

    @staticmethod
    @contextmanager
    def challenge_span(
        provider: str,
        *,
        user_id: str | None = None,
    ) -> Generator[Any, None, None]:
        with TwoFactorTracing.span(
            "challenge", provider=provider, user_id=user_id
        ) as span:
            yield span

    @staticmethod
    @contextmanager
    def verify_span(
        provider: str,
        *,
        user_id: str | None = None,
    ) -> Generator[Any, None, None]:
        with TwoFactorTracing.span(
            "verify", provider=provider, user_id=user_id
        ) as span:
            yield span

    @staticmethod
    def set_result(span: Any, accepted: bool) -> None:
        """Tag a verify span with the outcome.

        Rejected proofs leave the status unset.
        """
        if not span:
            return
        span.set_attribute("two_factor.accepted", accepted)
        if accepted:
            span.set_status(Status(StatusCode.OK))


__all__: list[str] = [
    "TRACER_NAME",
    "TwoFactorTracing",
]
