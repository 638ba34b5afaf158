"""Audit events for two-factor operations.

Every login challenge, verification outcome and enrollment change can be
recorded as a ``TwoFactorAuditEvent`` through an ``IAuditStore``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class TwoFactorEventType(Enum):
    """Types of two-factor audit events.

    Event naming follows the pattern: `two_factor.<resource>.<action>`
    """

    # Login events
    CHALLENGE_ISSUED = "two_factor.challenge.issued"
    VERIFY_SUCCESS = "two_factor.verify.success"
    VERIFY_FAILED = "two_factor.verify.failed"
    NONCE_REJECTED = "two_factor.nonce.rejected"

    # Security events
    REPLAY_DETECTED = "two_factor.replay.detected"

    # Enrollment events
    PROVIDER_ENROLLED = "two_factor.provider.enrolled"
    PROVIDER_REMOVED = "two_factor.provider.removed"
    BACKUP_CODES_GENERATED = "two_factor.backup_codes.generated"


@dataclass(frozen=True)
class TwoFactorAuditEvent:
    """Two-factor audit event.

    Attributes:
        event_type: The type of event.
        user_id: The user the event concerns.
        provider_key: Provider involved, if any.
        timestamp: When the event occurred (UTC).
        ip_address: Client IP address (if available).
        user_agent: Client user agent string (if available).
        success: Whether the operation was successful.
        error_code: Error code if operation failed.
        error_message: Human-readable error message if failed.
        metadata: Additional event-specific data.
    """

    event_type: TwoFactorEventType
    user_id: str
    provider_key: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ip_address: str | None = None
    user_agent: str | None = None
    success: bool = True
    error_code: str | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate event data."""
        if not self.success and not self.error_code:
            object.__setattr__(self, "error_code", "UNKNOWN_ERROR")

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization.

        Returns:
            Dictionary representation suitable for JSON serialization.
        """
        return {
            "event_type": self.event_type.value,
            "user_id": self.user_id,
            "provider_key": self.provider_key,
            "timestamp": self.timestamp.isoformat(),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "success": self.success,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TwoFactorAuditEvent:
        """Create event from dictionary.

        Raises:
            ValueError: If required fields are missing or invalid.
        """
        event_type_str = data.get("event_type")
        if event_type_str is None:
            raise ValueError("Missing required 'event_type'")
        user_id = data.get("user_id")
        if user_id is None:
            raise ValueError("Missing required 'user_id'")

        try:
            event_type = TwoFactorEventType(event_type_str)
        except ValueError as e:
            raise ValueError(f"Invalid event_type: {event_type_str}") from e

        timestamp = data.get("timestamp")
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp)
            if timestamp.tzinfo is None:
                timestamp = timestamp.replace(tzinfo=timezone.utc)
        elif timestamp is None:
            timestamp = datetime.now(timezone.utc)

        return cls(
            event_type=event_type,
            user_id=user_id,
            provider_key=data.get("provider_key"),
            timestamp=timestamp,
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
            success=data.get("success", True),
            error_code=data.get("error_code"),
            error_message=data.get("error_message"),
            metadata=data.get("metadata", {}),
        )


def _timestamp(epoch: float | None) -> datetime:
    if epoch is None:
        return datetime.now(timezone.utc)
    return datetime.fromtimestamp(epoch, tz=timezone.utc)


# ═══════════════════════════════════════════════════════════════
# EVENT FACTORY FUNCTIONS
# ═══════════════════════════════════════════════════════════════


def challenge_issued_event(
    user_id: str,
    provider_key: str,
    *,
    at: float | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> TwoFactorAuditEvent:
    """Create a challenge issued event."""
    return TwoFactorAuditEvent(
        event_type=TwoFactorEventType.CHALLENGE_ISSUED,
        user_id=user_id,
        provider_key=provider_key,
        timestamp=_timestamp(at),
        ip_address=ip_address,
        user_agent=user_agent,
        metadata=metadata or {},
    )


def verify_success_event(
    user_id: str,
    provider_key: str,
    *,
    at: float | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> TwoFactorAuditEvent:
    """Create a successful verification event."""
    return TwoFactorAuditEvent(
        event_type=TwoFactorEventType.VERIFY_SUCCESS,
        user_id=user_id,
        provider_key=provider_key,
        timestamp=_timestamp(at),
        ip_address=ip_address,
        user_agent=user_agent,
        metadata=metadata or {},
    )


def verify_failed_event(
    user_id: str,
    provider_key: str,
    *,
    at: float | None = None,
    error_code: str = "INVALID_PROOF",
    error_message: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> TwoFactorAuditEvent:
    """Create a failed verification event."""
    return TwoFactorAuditEvent(
        event_type=TwoFactorEventType.VERIFY_FAILED,
        user_id=user_id,
        provider_key=provider_key,
        timestamp=_timestamp(at),
        ip_address=ip_address,
        user_agent=user_agent,
        success=False,
        error_code=error_code,
        error_message=error_message,
        metadata=metadata or {},
    )


def nonce_rejected_event(
    user_id: str,
    *,
    at: float | None = None,
    error_code: str = "NONCE_MISMATCH",
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> TwoFactorAuditEvent:
    """Create a rejected login nonce event."""
    return TwoFactorAuditEvent(
        event_type=TwoFactorEventType.NONCE_REJECTED,
        user_id=user_id,
        timestamp=_timestamp(at),
        ip_address=ip_address,
        user_agent=user_agent,
        success=False,
        error_code=error_code,
    )


def replay_detected_event(
    user_id: str,
    provider_key: str,
    key_handle: str,
    stored_counter: int,
    received_counter: int,
    *,
    at: float | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> TwoFactorAuditEvent:
    """Create a signature replay (possible cloned key) event."""
    return TwoFactorAuditEvent(
        event_type=TwoFactorEventType.REPLAY_DETECTED,
        user_id=user_id,
        provider_key=provider_key,
        timestamp=_timestamp(at),
        ip_address=ip_address,
        user_agent=user_agent,
        success=False,
        error_code="SIGNATURE_REPLAY",
        metadata={
            "key_handle": key_handle,
            "stored_counter": stored_counter,
            "received_counter": received_counter,
        },
    )


def provider_enrolled_event(
    user_id: str,
    provider_key: str,
    *,
    at: float | None = None,
    metadata: dict[str, Any] | None = None,
) -> TwoFactorAuditEvent:
    """Create a provider enrolled event."""
    return TwoFactorAuditEvent(
        event_type=TwoFactorEventType.PROVIDER_ENROLLED,
        user_id=user_id,
        provider_key=provider_key,
        timestamp=_timestamp(at),
        metadata=metadata or {},
    )


def provider_removed_event(
    user_id: str,
    provider_key: str,
    *,
    at: float | None = None,
    metadata: dict[str, Any] | None = None,
) -> TwoFactorAuditEvent:
    """Create a provider removed event."""
    return TwoFactorAuditEvent(
        event_type=TwoFactorEventType.PROVIDER_REMOVED,
        user_id=user_id,
        provider_key=provider_key,
        timestamp=_timestamp(at),
        metadata=metadata or {},
    )


def backup_codes_generated_event(
    user_id: str,
    count: int,
    *,
    at: float | None = None,
    mode: str = "replace",
) -> TwoFactorAuditEvent:
    """Create a backup codes generated event."""
    return TwoFactorAuditEvent(
        event_type=TwoFactorEventType.BACKUP_CODES_GENERATED,
        user_id=user_id,
        provider_key="backup_codes",
        timestamp=_timestamp(at),
        metadata={"count": count, "mode": mode},
    )


__all__: list[str] = [
    "TwoFactorEventType",
    "TwoFactorAuditEvent",
    "challenge_issued_event",
    "verify_success_event",
    "verify_failed_event",
    "nonce_rejected_event",
    "replay_detected_event",
    "provider_enrolled_event",
    "provider_removed_event",
    "backup_codes_generated_event",
]
