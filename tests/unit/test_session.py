"""Tests for the two-factor login flow."""

from __future__ import annotations

import pytest
import pytest_asyncio

from two_factor.audit import TwoFactorEventType
from two_factor.config import NonceConfig
from two_factor.exceptions import ProviderUnavailableError, SignatureReplayError
from two_factor.nonce import LoginNonceManager
from two_factor.providers.totp import TOTP_KEY_ATTRIBUTE
from two_factor.session import (
    EXPIRED_MESSAGE,
    INVALID_CODE_MESSAGE,
    AttemptState,
    AuthenticationSession,
    LoginRequest,
)

USER_ID = "user-123"
SECRET = "JBSWY3DPEHPK3PXP"


@pytest.fixture
def request_context() -> LoginRequest:
    return LoginRequest(
        user_id=USER_ID,
        redirect_to="/dashboard",
        ip_address="203.0.113.7",
        user_agent="pytest",
    )


@pytest_asyncio.fixture
async def totp_user(registry, store):
    await registry.set_enabled_for_user(USER_ID, ["totp", "backup_codes"])
    await store.set(USER_ID, TOTP_KEY_ATTRIBUTE, {"secret": SECRET, "label": ""})


def _current_code(totp) -> str:
    return totp.compute_code(SECRET, totp.current_step())


class TestBegin:
    """Test starting the second step."""

    @pytest.mark.asyncio
    async def test_without_two_factor(self, session, request_context, audit_store) -> None:
        step = await session.begin(request_context)

        assert step.state is AttemptState.NOT_STARTED
        assert not step.two_factor_required
        assert step.login_complete
        assert step.nonce is None
        assert audit_store.count() == 0

    @pytest.mark.asyncio
    async def test_issues_primary_challenge(
        self, session, request_context, totp_user, backup_codes, audit_store
    ) -> None:
        await backup_codes.generate(USER_ID, count=2)

        step = await session.begin(request_context)

        assert step.state is AttemptState.CHALLENGE_ISSUED
        assert step.two_factor_required
        assert not step.login_complete
        assert step.provider_key == "totp"
        assert step.nonce is not None
        assert step.challenge is not None
        assert step.challenge.provider_key == "totp"
        assert [d.key for d in step.backup_providers] == ["backup_codes"]
        assert step.request is request_context

        [event] = await audit_store.get_events(USER_ID)
        assert event.event_type is TwoFactorEventType.CHALLENGE_ISSUED
        assert event.provider_key == "totp"
        assert event.ip_address == "203.0.113.7"


class TestValidate:
    """Test proof validation."""

    @pytest.mark.asyncio
    async def test_correct_code(
        self, session, request_context, totp_user, totp, audit_store
    ) -> None:
        step = await session.begin(request_context)

        result = await session.validate(
            request_context, step.nonce.key, _current_code(totp)
        )

        assert result.state is AttemptState.VERIFIED
        assert result.is_verified
        assert result.login_complete
        assert result.provider_key == "totp"
        assert audit_store.count_by_type(TwoFactorEventType.VERIFY_SUCCESS) == 1

    @pytest.mark.asyncio
    async def test_wrong_code_issues_new_nonce(
        self, session, request_context, totp_user, totp, audit_store
    ) -> None:
        step = await session.begin(request_context)

        result = await session.validate(request_context, step.nonce.key, "12345")

        assert result.state is AttemptState.REJECTED
        assert result.message == INVALID_CODE_MESSAGE
        assert result.provider_key == "totp"
        assert result.nonce is not None
        assert result.nonce.key != step.nonce.key
        assert not result.login_complete
        assert audit_store.count_by_type(TwoFactorEventType.VERIFY_FAILED) == 1

        retry = await session.validate(
            request_context, result.nonce.key, _current_code(totp)
        )
        assert retry.is_verified

    @pytest.mark.asyncio
    async def test_nonce_is_single_use(
        self, session, request_context, totp_user, totp, audit_store
    ) -> None:
        step = await session.begin(request_context)
        await session.validate(request_context, step.nonce.key, _current_code(totp))

        result = await session.validate(
            request_context, step.nonce.key, _current_code(totp)
        )

        assert result.state is AttemptState.EXPIRED
        assert result.message == EXPIRED_MESSAGE
        assert not result.login_complete
        [event] = await audit_store.get_events(
            USER_ID, event_types=[TwoFactorEventType.NONCE_REJECTED]
        )
        assert event.error_code == "NONCE_MISMATCH"

    @pytest.mark.asyncio
    async def test_expired_nonce(
        self, session, request_context, totp_user, totp, clock, audit_store
    ) -> None:
        step = await session.begin(request_context)
        clock.advance(301)

        result = await session.validate(
            request_context, step.nonce.key, _current_code(totp)
        )

        assert result.state is AttemptState.EXPIRED
        [event] = await audit_store.get_events(
            USER_ID, event_types=[TwoFactorEventType.NONCE_REJECTED]
        )
        assert event.error_code == "NONCE_EXPIRED"

    @pytest.mark.asyncio
    async def test_no_provider(self, session, request_context, nonces) -> None:
        nonce = await nonces.issue(USER_ID)

        with pytest.raises(ProviderUnavailableError):
            await session.validate(request_context, nonce.key, "123456")


class TestSelectProvider:
    """Test switching to a backup method."""

    @pytest.mark.asyncio
    async def test_switch_to_backup_codes(
        self, session, request_context, totp_user, backup_codes
    ) -> None:
        codes = await backup_codes.generate(USER_ID, count=2)
        step = await session.begin(request_context)

        switched = await session.select_provider(
            request_context, step.nonce.key, "backup_codes"
        )

        assert switched.state is AttemptState.CHALLENGE_ISSUED
        assert switched.provider_key == "backup_codes"
        assert [d.key for d in switched.backup_providers] == ["totp"]

        result = await session.validate(
            request_context, switched.nonce.key, codes[0], provider_key="backup_codes"
        )
        assert result.is_verified
        assert await backup_codes.remaining_count(USER_ID) == 1

    @pytest.mark.asyncio
    async def test_switch_requires_nonce(
        self, session, request_context, totp_user
    ) -> None:
        await session.begin(request_context)

        result = await session.select_provider(request_context, "stale", "totp")

        assert result.state is AttemptState.EXPIRED

    @pytest.mark.asyncio
    async def test_switch_to_unavailable_provider(
        self, session, request_context, totp_user
    ) -> None:
        step = await session.begin(request_context)

        with pytest.raises(ProviderUnavailableError):
            await session.select_provider(request_context, step.nonce.key, "email_otp")


class TestSecurityKeyLogin:
    """Test the flow with a security key as primary."""

    @pytest_asyncio.fixture
    async def key_user(self, registry, challenge_key, security_key):
        await registry.set_enabled_for_user(USER_ID, ["challenge_key"])
        request = await challenge_key.start_registration(USER_ID)
        await challenge_key.complete_registration(
            USER_ID, security_key.register(request.challenge)
        )

    @pytest.mark.asyncio
    async def test_replay_is_raised_and_audited(
        self, session, request_context, key_user, security_key, audit_store
    ) -> None:
        step = await session.begin(request_context)
        assert step.provider_key == "challenge_key"
        response = security_key.sign(step.challenge.data["challenge"], counter=5)
        result = await session.validate(request_context, step.nonce.key, response)
        assert result.is_verified

        step = await session.begin(request_context)
        response = security_key.sign(step.challenge.data["challenge"], counter=5)
        with pytest.raises(SignatureReplayError):
            await session.validate(request_context, step.nonce.key, response)

        [event] = await audit_store.get_events_by_type(
            TwoFactorEventType.REPLAY_DETECTED
        )
        assert event.user_id == USER_ID
        assert event.error_code == "SIGNATURE_REPLAY"
        assert event.metadata["stored_counter"] == 5
        assert event.metadata["received_counter"] == 5

    @pytest.mark.asyncio
    async def test_expired_challenge(
        self,
        registry,
        store,
        clock,
        random_source,
        config,
        request_context,
        key_user,
        security_key,
    ) -> None:
        nonces = LoginNonceManager(
            store,
            secret_key=config.secret_key,
            clock=clock,
            random_source=random_source,
            config=NonceConfig(ttl_seconds=3600),
        )
        session = AuthenticationSession(registry, nonces, clock=clock)
        step = await session.begin(request_context)
        clock.advance(301)

        response = security_key.sign(step.challenge.data["challenge"])
        result = await session.validate(request_context, step.nonce.key, response)

        assert result.state is AttemptState.EXPIRED
        assert result.provider_key == "challenge_key"
