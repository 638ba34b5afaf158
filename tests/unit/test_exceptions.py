"""Tests for the exception hierarchy."""

from __future__ import annotations

import pytest

from two_factor.exceptions import (
    ChallengeExpiredError,
    DeliveryError,
    InvalidEncodingError,
    NonceError,
    NonceExpiredError,
    NonceMismatchError,
    ProviderError,
    ProviderRegistrationError,
    ProviderUnavailableError,
    RegistrationError,
    SignatureReplayError,
    StorageConflictError,
    StorageError,
    TwoFactorError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_type",
        [
            ChallengeExpiredError,
            DeliveryError,
            InvalidEncodingError,
            NonceError,
            ProviderError,
            RegistrationError,
            StorageError,
        ],
    )
    def test_rooted_at_two_factor_error(self, exc_type: type[Exception]) -> None:
        assert issubclass(exc_type, TwoFactorError)

    def test_groupings(self) -> None:
        assert issubclass(NonceExpiredError, NonceError)
        assert issubclass(NonceMismatchError, NonceError)
        assert issubclass(ProviderUnavailableError, ProviderError)
        assert issubclass(ProviderRegistrationError, ProviderError)
        assert issubclass(StorageConflictError, StorageError)

    def test_invalid_encoding_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            raise InvalidEncodingError("bad base32")


class TestAttributes:
    def test_signature_replay(self) -> None:
        error = SignatureReplayError("aGFuZGxl", 7, 3)

        assert error.key_handle == "aGFuZGxl"
        assert error.stored_counter == 7
        assert error.received_counter == 3
        assert "stored=7" in str(error)
        assert "received=3" in str(error)

    def test_provider_unavailable_default_message(self) -> None:
        error = ProviderUnavailableError("totp")

        assert error.provider_key == "totp"
        assert "'totp'" in str(error)

    def test_provider_unavailable_custom_message(self) -> None:
        assert str(ProviderUnavailableError("totp", "nope")) == "nope"
