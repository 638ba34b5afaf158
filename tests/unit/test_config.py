"""Tests for configuration validation."""

from __future__ import annotations

import dataclasses

import pytest

from two_factor.config import (
    BackupCodesConfig,
    ChallengeKeyConfig,
    EmailOtpConfig,
    NonceConfig,
    TotpConfig,
    TwoFactorConfig,
)


class TestDefaults:
    """Test default values."""

    def test_totp_defaults(self) -> None:
        config = TotpConfig()
        assert config.digits == 6
        assert config.digest == "sha1"
        assert config.step_seconds == 30
        assert config.tolerance_steps == 4
        assert config.secret_bits == 160

    def test_other_defaults(self) -> None:
        assert EmailOtpConfig().code_length == 8
        assert EmailOtpConfig().ttl_seconds == 900
        assert BackupCodesConfig().count == 10
        assert BackupCodesConfig().code_length == 8
        assert NonceConfig().ttl_seconds == 300
        assert ChallengeKeyConfig().challenge_ttl_seconds == 300

    def test_configs_are_frozen(self) -> None:
        config = TotpConfig()
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.digits = 8  # type: ignore[misc]


class TestValidation:
    """Test __post_init__ validation."""

    @pytest.mark.parametrize(
        "factory",
        [
            lambda: TotpConfig(digits=5),
            lambda: TotpConfig(digits=11),
            lambda: TotpConfig(step_seconds=0),
            lambda: TotpConfig(tolerance_steps=-1),
            lambda: TotpConfig(secret_bits=64),
            lambda: EmailOtpConfig(code_length=4),
            lambda: EmailOtpConfig(ttl_seconds=0),
            lambda: BackupCodesConfig(count=0),
            lambda: BackupCodesConfig(bcrypt_rounds=3),
            lambda: ChallengeKeyConfig(app_id=""),
            lambda: ChallengeKeyConfig(challenge_ttl_seconds=-5),
            lambda: NonceConfig(ttl_seconds=0),
        ],
    )
    def test_invalid_values_raise(self, factory) -> None:
        with pytest.raises(ValueError):
            factory()

    def test_secret_key_must_be_long_enough(self) -> None:
        with pytest.raises(ValueError, match="secret_key"):
            TwoFactorConfig(secret_key=b"short")

    def test_string_secret_key_is_encoded(self) -> None:
        config = TwoFactorConfig(secret_key="a-long-enough-secret-key")  # type: ignore[arg-type]
        assert config.secret_key == b"a-long-enough-secret-key"

    def test_nested_configs(self) -> None:
        config = TwoFactorConfig(
            secret_key=b"0123456789abcdef",
            nonce=NonceConfig(ttl_seconds=60),
        )
        assert config.nonce.ttl_seconds == 60
        assert config.totp == TotpConfig()
