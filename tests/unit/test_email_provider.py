"""Tests for the email OTP provider."""

from __future__ import annotations

import re

import pytest

from two_factor.exceptions import DeliveryError, ProviderUnavailableError
from two_factor.providers.email import (
    EMAIL_TOKEN_ATTRIBUTE,
    EmailOtpProvider,
    is_valid_email,
)

USER_ID = "user-123"


def _code_from(body: str) -> str:
    match = re.search(r"Enter (\d+) to log in\.", body)
    assert match is not None
    return match.group(1)


class TestIssue:
    """Test token issuance."""

    @pytest.mark.asyncio
    async def test_issue_sends_code(self, email_otp: EmailOtpProvider, mailer) -> None:
        token = await email_otp.issue(USER_ID)

        assert len(token) == 8
        assert token.isdigit()
        assert len(mailer.sent) == 1
        to, subject, body = mailer.sent[0]
        assert to == "alice@example.com"
        assert subject == "Your login confirmation code for two-factor"
        assert body == f"Enter {token} to log in."

    @pytest.mark.asyncio
    async def test_only_hash_is_stored(self, email_otp, store, clock) -> None:
        token = await email_otp.issue(USER_ID)

        record = await store.get(USER_ID, EMAIL_TOKEN_ATTRIBUTE)
        assert token not in str(record)
        assert len(record["hash"]) == 64
        assert record["expires_at"] == clock.now() + 900

    @pytest.mark.asyncio
    async def test_new_token_replaces_old(self, email_otp) -> None:
        first = await email_otp.issue(USER_ID)
        second = await email_otp.issue(USER_ID)

        if first != second:
            assert not await email_otp.verify(USER_ID, first)
        else:
            assert await email_otp.verify(USER_ID, first)

    @pytest.mark.asyncio
    async def test_issue_without_email(self, email_otp, directory, mailer) -> None:
        directory.set_email(USER_ID, None)

        with pytest.raises(ProviderUnavailableError) as exc_info:
            await email_otp.issue(USER_ID)
        assert exc_info.value.provider_key == "email_otp"
        assert mailer.sent == []

    @pytest.mark.asyncio
    async def test_delivery_failure_withdraws_token(
        self, email_otp, mailer, store
    ) -> None:
        mailer.accept = False

        with pytest.raises(DeliveryError):
            await email_otp.issue(USER_ID)
        assert await store.get(USER_ID, EMAIL_TOKEN_ATTRIBUTE) is None


class TestVerify:
    """Test token verification."""

    @pytest.mark.asyncio
    async def test_correct_token(self, email_otp) -> None:
        token = await email_otp.issue(USER_ID)
        assert await email_otp.verify(USER_ID, token)

    @pytest.mark.asyncio
    async def test_token_is_single_use(self, email_otp) -> None:
        token = await email_otp.issue(USER_ID)

        assert await email_otp.verify(USER_ID, token)
        assert not await email_otp.verify(USER_ID, token)

    @pytest.mark.asyncio
    async def test_wrong_token_consumes_pending(self, email_otp) -> None:
        token = await email_otp.issue(USER_ID)
        wrong = "0" * 8 if token != "0" * 8 else "1" * 8

        assert not await email_otp.verify(USER_ID, wrong)
        assert not await email_otp.verify(USER_ID, token)
        assert not await email_otp.has_pending_token(USER_ID)

    @pytest.mark.asyncio
    async def test_expired_token(self, email_otp, clock) -> None:
        token = await email_otp.issue(USER_ID)
        clock.advance(901)

        assert not await email_otp.verify(USER_ID, token)

    @pytest.mark.asyncio
    async def test_token_at_expiry_boundary(self, email_otp, clock) -> None:
        token = await email_otp.issue(USER_ID)
        clock.advance(900)

        assert await email_otp.verify(USER_ID, token)

    @pytest.mark.asyncio
    async def test_no_pending_token(self, email_otp) -> None:
        assert not await email_otp.verify(USER_ID, "12345678")

    @pytest.mark.asyncio
    async def test_render_challenge_sends_mail(self, email_otp, mailer) -> None:
        payload = await email_otp.render_challenge(USER_ID)

        assert payload.provider_key == "email_otp"
        assert len(mailer.sent) == 1
        assert await email_otp.verify(
            USER_ID, {"code": _code_from(mailer.sent[0][2])}
        )


class TestAvailability:
    """Test the email address precondition."""

    @pytest.mark.parametrize(
        "address,valid",
        [
            ("alice@example.com", True),
            ("a.b+c@mail.example.org", True),
            ("alice@localhost", False),
            ("alice example@example.com", False),
            ("@example.com", False),
            ("alice@", False),
            ("", False),
            (None, False),
        ],
    )
    def test_is_valid_email(self, address, valid) -> None:
        assert is_valid_email(address) is valid

    @pytest.mark.asyncio
    async def test_available_with_email(self, email_otp, directory) -> None:
        assert await email_otp.is_available_for_user(USER_ID)

        directory.set_email(USER_ID, "not-an-address")
        assert not await email_otp.is_available_for_user(USER_ID)
