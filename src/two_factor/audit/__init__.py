"""Audit events and storage for two-factor activity."""

from __future__ import annotations

from .events import (
    TwoFactorAuditEvent,
    TwoFactorEventType,
    backup_codes_generated_event,
    challenge_issued_event,
    nonce_rejected_event,
    provider_enrolled_event,
    provider_removed_event,
    replay_detected_event,
    verify_failed_event,
    verify_success_event,
)
from .memory import InMemoryAuditStore

__all__: list[str] = [
    # Event types and classes
    "TwoFactorEventType",
    "TwoFactorAuditEvent",
    # Event factory functions
    "challenge_issued_event",
    "verify_success_event",
    "verify_failed_event",
    "nonce_rejected_event",
    "replay_detected_event",
    "provider_enrolled_event",
    "provider_removed_event",
    "backup_codes_generated_event",
    # Store implementations
    "InMemoryAuditStore",
]
