"""Tests for the provider contract helpers."""

from __future__ import annotations

import pytest

from two_factor.providers.base import (
    Capability,
    ChallengePayload,
    TwoFactorProvider,
    make_provider_key,
    proof_as_text,
)


class _StaticProvider(TwoFactorProvider):
    priority = 55
    capabilities = frozenset({Capability.OTP})

    @property
    def label(self) -> str:
        return "Static"

    @property
    def description(self) -> str:
        return "Accepts one fixed code."

    async def is_available_for_user(self, user_id: str) -> bool:
        return True

    async def render_challenge(self, user_id: str) -> ChallengePayload:
        return ChallengePayload(provider_key=self.key, prompt="Enter 42")

    async def verify(self, user_id, proof) -> bool:
        return proof_as_text(proof) == "42"


class _NamedProvider(_StaticProvider):
    key = "custom"


class TestMakeProviderKey:
    @pytest.mark.parametrize(
        ("class_name", "expected"),
        [
            ("TotpProvider", "totp"),
            ("EmailOtpProvider", "email_otp"),
            ("BackupCodesProvider", "backup_codes"),
            ("ChallengeKeyProvider", "challenge_key"),
            ("HTTPSKeyProvider", "https_key"),
            ("Sms2Factor", "sms2_factor"),
        ],
    )
    def test_keys(self, class_name: str, expected: str) -> None:
        assert make_provider_key(class_name) == expected


class TestProofAsText:
    def test_strips_whitespace(self) -> None:
        assert proof_as_text(" 123 456\n") == "123456"

    def test_bytes(self) -> None:
        assert proof_as_text(b"12 34") == "1234"

    def test_mapping(self) -> None:
        assert proof_as_text({"code": "9 9"}) == "99"
        assert proof_as_text({"token": "1"}, field_name="token") == "1"
        assert proof_as_text({}) == ""


class TestTwoFactorProvider:
    def test_key_derived_from_class_name(self) -> None:
        assert _StaticProvider.key == "_static"
        assert _NamedProvider.key == "custom"

    def test_descriptor(self) -> None:
        descriptor = _StaticProvider().descriptor()

        assert descriptor.key == "_static"
        assert descriptor.label == "Static"
        assert descriptor.priority == 55
        assert descriptor.capabilities == frozenset({Capability.OTP})

    def test_repr(self) -> None:
        assert repr(_NamedProvider()) == "_NamedProvider(key='custom', priority=55)"

    def test_abstract(self) -> None:
        with pytest.raises(TypeError):
            TwoFactorProvider()  # type: ignore[abstract]

    @pytest.mark.asyncio
    async def test_defaults(self) -> None:
        provider = _StaticProvider()

        assert await provider.option_details("user-123") == ""
        assert await provider.management_actions("user-123") == ()
        await provider.delete_user_data("user-123")
        assert await provider.verify("user-123", {"code": "42"})
