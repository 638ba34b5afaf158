"""Collaborator ports (protocols) for the two-factor engine.

The engine owns no storage, mail transport, clock or entropy. The host
application supplies implementations of these protocols; in-memory
versions for tests live in ``two_factor.memory`` and ``two_factor.sources``.
All ports use @runtime_checkable for isinstance checks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .audit.events import TwoFactorAuditEvent, TwoFactorEventType


# ═══════════════════════════════════════════════════════════════
# USER ATTRIBUTE STORAGE
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IAttributeStore(Protocol):
    """Protocol for per-user key-value attribute storage.

    Values are JSON-compatible (dicts, lists, strings, numbers, booleans).
    ``compare_and_set`` must be atomic: it is the only primitive the
    engine uses for read-modify-write of nonces, single-use codes and
    signature counters.
    """

    async def get(self, user_id: str, key: str) -> Any | None:
        """Get an attribute value.

        Args:
            user_id: User identifier.
            key: Attribute key.

        Returns:
            Stored value or None if absent.
        """
        ...

    async def set(self, user_id: str, key: str, value: Any) -> bool:
        """Set an attribute value unconditionally.

        Returns:
            True if the value was written.
        """
        ...

    async def delete(self, user_id: str, key: str) -> bool:
        """Delete an attribute.

        Returns:
            True if a value existed and was removed.
        """
        ...

    async def compare_and_set(
        self,
        user_id: str,
        key: str,
        expected: Any | None,
        new: Any | None,
    ) -> bool:
        """Atomically replace ``expected`` with ``new``.

        Args:
            user_id: User identifier.
            key: Attribute key.
            expected: Value that must currently be stored (None = absent).
            new: Replacement value (None = delete).

        Returns:
            True if the stored value equalled ``expected`` and was replaced.
        """
        ...


# ═══════════════════════════════════════════════════════════════
# SITE-WIDE PROVIDER ALLOW-LIST
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class ISiteAllowListStore(Protocol):
    """Protocol for the site-wide set of enabled provider keys."""

    async def get(self) -> frozenset[str]:
        """Get the enabled provider keys (empty if never initialized)."""
        ...

    async def set_if_absent(self, keys: frozenset[str]) -> bool:
        """Store keys only if the allow-list is currently empty.

        Returns:
            True if the keys were stored.
        """
        ...


# ═══════════════════════════════════════════════════════════════
# DELIVERY AND DIRECTORY
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IMailer(Protocol):
    """Protocol for outbound email delivery.

    The engine does NOT send email itself; the application implements
    this with its mail transport (SMTP, SES, SendGrid, ...).
    """

    async def send(self, to_address: str, subject: str, body: str) -> bool:
        """Send a plain-text email.

        Returns:
            True if the message was accepted for delivery.
        """
        ...


@runtime_checkable
class IUserDirectory(Protocol):
    """Protocol for looking up user profile data the providers need."""

    async def get_email(self, user_id: str) -> str | None:
        """Get the user's email address, or None if unknown."""
        ...


# ═══════════════════════════════════════════════════════════════
# CLOCK AND ENTROPY
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IClock(Protocol):
    """Protocol for the current time, injectable for tests."""

    def now(self) -> float:
        """Current time as seconds since the Unix epoch."""
        ...


@runtime_checkable
class IRandomSource(Protocol):
    """Protocol for cryptographically secure random bytes."""

    def token_bytes(self, n: int) -> bytes:
        """Return ``n`` random bytes."""
        ...


# ═══════════════════════════════════════════════════════════════
# AUDIT PORT
# ═══════════════════════════════════════════════════════════════


@runtime_checkable
class IAuditStore(Protocol):
    """Protocol for two-factor audit event storage.

    Audit stores persist verification outcomes and security events
    (signature replay) for monitoring and alerting.
    """

    async def record(self, event: TwoFactorAuditEvent) -> None:
        """Record an audit event."""
        ...

    async def get_events(
        self,
        user_id: str,
        *,
        event_types: list[TwoFactorEventType] | None = None,
        limit: int = 100,
    ) -> list[TwoFactorAuditEvent]:
        """Get audit events for a user, most recent first."""
        ...


__all__: list[str] = [
    "IAttributeStore",
    "ISiteAllowListStore",
    "IMailer",
    "IUserDirectory",
    "IClock",
    "IRandomSource",
    "IAuditStore",
]
