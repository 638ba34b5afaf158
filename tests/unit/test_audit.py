"""Tests for audit events and the in-memory audit store."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from two_factor.audit import (
    InMemoryAuditStore,
    TwoFactorAuditEvent,
    TwoFactorEventType,
    backup_codes_generated_event,
    challenge_issued_event,
    nonce_rejected_event,
    verify_failed_event,
    verify_success_event,
)

USER_ID = "user-123"


class TestTwoFactorAuditEvent:
    def test_failure_gets_error_code(self) -> None:
        event = TwoFactorAuditEvent(
            event_type=TwoFactorEventType.VERIFY_FAILED,
            user_id=USER_ID,
            success=False,
        )
        assert event.error_code == "UNKNOWN_ERROR"

    def test_dict_round_trip(self) -> None:
        event = verify_failed_event(
            USER_ID, "totp", at=1_700_000_000, ip_address="203.0.113.7"
        )
        data = event.to_dict()

        assert data["event_type"] == "two_factor.verify.failed"
        assert data["timestamp"] == "2023-11-14T22:13:20+00:00"
        assert TwoFactorAuditEvent.from_dict(data) == event

    def test_from_dict_naive_timestamp(self) -> None:
        event = TwoFactorAuditEvent.from_dict(
            {
                "event_type": "two_factor.verify.success",
                "user_id": USER_ID,
                "timestamp": "2024-01-01T00:00:00",
            }
        )
        assert event.timestamp == datetime(2024, 1, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "data",
        [
            {"user_id": USER_ID},
            {"event_type": "two_factor.verify.success"},
            {"event_type": "nope", "user_id": USER_ID},
        ],
    )
    def test_from_dict_invalid(self, data) -> None:
        with pytest.raises(ValueError):
            TwoFactorAuditEvent.from_dict(data)


class TestEventFactories:
    def test_codes(self) -> None:
        assert verify_failed_event(USER_ID, "totp").error_code == "INVALID_PROOF"
        assert nonce_rejected_event(USER_ID).error_code == "NONCE_MISMATCH"
        assert verify_success_event(USER_ID, "totp").success

    def test_backup_codes_generated(self) -> None:
        event = backup_codes_generated_event(USER_ID, 10, mode="append")

        assert event.provider_key == "backup_codes"
        assert event.metadata == {"count": 10, "mode": "append"}


class TestInMemoryAuditStore:
    @pytest.mark.asyncio
    async def test_most_recent_first(self) -> None:
        store = InMemoryAuditStore()
        await store.record(challenge_issued_event(USER_ID, "totp", at=1.0))
        await store.record(verify_failed_event(USER_ID, "totp", at=2.0))
        await store.record(verify_success_event(USER_ID, "totp", at=3.0))
        await store.record(verify_success_event("someone-else", "totp", at=4.0))

        events = await store.get_events(USER_ID)
        assert [e.event_type for e in events] == [
            TwoFactorEventType.VERIFY_SUCCESS,
            TwoFactorEventType.VERIFY_FAILED,
            TwoFactorEventType.CHALLENGE_ISSUED,
        ]
        assert len(await store.get_events(USER_ID, limit=1)) == 1

    @pytest.mark.asyncio
    async def test_filters_and_counts(self) -> None:
        store = InMemoryAuditStore()
        await store.record(verify_success_event(USER_ID, "totp"))
        await store.record(verify_success_event("someone-else", "totp"))
        await store.record(verify_failed_event(USER_ID, "totp"))

        failed = await store.get_events(
            USER_ID, event_types=[TwoFactorEventType.VERIFY_FAILED]
        )
        assert len(failed) == 1
        assert len(
            await store.get_events_by_type(TwoFactorEventType.VERIFY_SUCCESS)
        ) == 2
        assert store.count() == 3
        assert store.count_by_type(TwoFactorEventType.VERIFY_SUCCESS) == 2

        store.clear()
        assert store.count() == 0
        assert await store.get_events(USER_ID) == []

    @pytest.mark.asyncio
    async def test_failures(self) -> None:
        store = InMemoryAuditStore()
        await store.record(verify_failed_event(USER_ID, "totp", at=100.0))
        await store.record(verify_success_event(USER_ID, "totp", at=200.0))
        await store.record(nonce_rejected_event(USER_ID, at=300.0))
        await store.record(verify_failed_event("someone-else", "totp", at=400.0))

        failures = await store.get_failures(USER_ID)
        assert [e.event_type for e in failures] == [
            TwoFactorEventType.NONCE_REJECTED,
            TwoFactorEventType.VERIFY_FAILED,
        ]

        recent = await store.get_failures(
            USER_ID, since=datetime.fromtimestamp(150, tz=timezone.utc)
        )
        assert len(recent) == 1
