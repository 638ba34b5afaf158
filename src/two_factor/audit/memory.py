"""In-memory audit store for testing and development."""

from __future__ import annotations

from collections import defaultdict
from typing import TYPE_CHECKING

from ..ports import IAuditStore

if TYPE_CHECKING:
    from datetime import datetime

    from .events import TwoFactorAuditEvent, TwoFactorEventType


class InMemoryAuditStore(IAuditStore):
    """In-memory implementation of IAuditStore.

    Events are indexed by user and by event type.

    Note:
        Events are stored in memory and will be lost on restart.
        Not suitable for production use.

    Example:
        ```python
        store = InMemoryAuditStore()
        await store.record(verify_success_event("user-123", "totp"))
        events = await store.get_events("user-123")
        ```
    """

    def __init__(self) -> None:
        self._events: list[TwoFactorAuditEvent] = []
        self._by_user: dict[str, list[int]] = defaultdict(list)
        self._by_type: dict[str, list[int]] = defaultdict(list)

    async def record(self, event: TwoFactorAuditEvent) -> None:
        index = len(self._events)
        self._events.append(event)
        self._by_user[event.user_id].append(index)
        self._by_type[event.event_type.value].append(index)

    def _newest_first(self, indices: list[int]) -> list[TwoFactorAuditEvent]:
        return [self._events[idx] for idx in reversed(indices)]

    async def get_events(
        self,
        user_id: str,
        *,
        event_types: list[TwoFactorEventType] | None = None,
        limit: int = 100,
    ) -> list[TwoFactorAuditEvent]:
        """Get audit events for a user, most recent first."""
        events = self._newest_first(self._by_user.get(user_id, []))
        if event_types:
            events = [e for e in events if e.event_type in event_types]
        return events[:limit]

    async def get_events_by_type(
        self,
        event_type: TwoFactorEventType,
        *,
        limit: int = 100,
    ) -> list[TwoFactorAuditEvent]:
        """Get audit events of one type across all users, most recent first."""
        return self._newest_first(self._by_type.get(event_type.value, []))[:limit]

    async def get_failures(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[TwoFactorAuditEvent]:
        """Get a user's unsuccessful events (wrong proofs, stale nonces, replays).

        Args:
            user_id: User to query.
            since: Only events at or after this time.
            limit: Maximum number of events to return.

        Returns:
            Failed events, most recent first.
        """
        failures = [
            event
            for event in self._newest_first(self._by_user.get(user_id, []))
            if not event.success and (since is None or event.timestamp >= since)
        ]
        return failures[:limit]

    def clear(self) -> None:
        """Clear all stored events."""
        self._events.clear()
        self._by_user.clear()
        self._by_type.clear()

    def count(self) -> int:
        return len(self._events)

    def count_by_type(self, event_type: TwoFactorEventType) -> int:
        return len(self._by_type.get(event_type.value, []))


__all__: list[str] = ["InMemoryAuditStore"]
