"""Clock and entropy sources."""

from __future__ import annotations

import secrets
import time

from .ports import IClock, IRandomSource


class SystemClock(IClock):
    """Wall-clock time from ``time.time()``."""

    def now(self) -> float:
        return time.time()


class FrozenClock(IClock):
    """Manually driven clock for tests.

    Example:
        ```python
        clock = FrozenClock(1_700_000_000)
        manager = LoginNonceManager(store, clock=clock)
        nonce = await manager.issue("user-1")
        clock.advance(301)
        assert not await manager.verify("user-1", nonce.key)
        ```
    """

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def set(self, value: float) -> None:
        self._now = float(value)

    def advance(self, seconds: float) -> None:
        self._now += seconds


class SystemRandomSource(IRandomSource):
    """Operating-system CSPRNG via ``secrets``."""

    def token_bytes(self, n: int) -> bytes:
        return secrets.token_bytes(n)


__all__: list[str] = ["SystemClock", "FrozenClock", "SystemRandomSource"]
