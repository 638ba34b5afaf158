"""Two-factor authentication errors.

All errors inherit from TwoFactorError. Expected wrong-input outcomes
(a mistyped code, a stale backup code) are reported as ``False`` by the
providers and never raised; the classes below cover structural failures
and security events that callers must handle distinctly.
"""

from __future__ import annotations

# ═══════════════════════════════════════════════════════════════
# BASE ERROR
# ═══════════════════════════════════════════════════════════════


class TwoFactorError(Exception):
    """Root exception for the two-factor engine."""


# ═══════════════════════════════════════════════════════════════
# ENCODING ERRORS
# ═══════════════════════════════════════════════════════════════


class InvalidEncodingError(TwoFactorError, ValueError):
    """Raised when a base32 secret or websafe-base64 blob is malformed."""


# ═══════════════════════════════════════════════════════════════
# NONCE / CHALLENGE ERRORS
# ═══════════════════════════════════════════════════════════════


class NonceError(TwoFactorError):
    """Base class for login nonce failures.

    Callers should show "please try logging in again" rather than a
    generic error.
    """


class NonceExpiredError(NonceError):
    """Raised when the login nonce matched but its expiry has passed."""


class NonceMismatchError(NonceError):
    """Raised when no nonce is stored or the submitted key does not match."""


class ChallengeExpiredError(TwoFactorError):
    """Raised when a pending security-key challenge has expired."""


# ═══════════════════════════════════════════════════════════════
# SECURITY KEY ERRORS
# ═══════════════════════════════════════════════════════════════


class SignatureReplayError(TwoFactorError):
    """Raised when a security key signature counter did not advance.

    This indicates a possibly cloned authenticator and must be logged
    or alerted on, never shown as a plain "invalid code".

    Attributes:
        key_handle: Websafe-base64 key handle of the offending key.
        stored_counter: Counter value on record.
        received_counter: Counter value carried by the signature.
    """

    def __init__(
        self,
        key_handle: str,
        stored_counter: int,
        received_counter: int,
    ) -> None:
        super().__init__(
            f"Signature counter did not advance for key {key_handle!r} "
            f"(stored={stored_counter}, received={received_counter})"
        )
        self.key_handle = key_handle
        self.stored_counter = stored_counter
        self.received_counter = received_counter


class RegistrationError(TwoFactorError):
    """Raised when a security key registration cannot be validated.

    Examples:
        - No pending registration request
        - Attestation signature does not verify
        - Malformed registration data
    """


# ═══════════════════════════════════════════════════════════════
# PROVIDER ERRORS
# ═══════════════════════════════════════════════════════════════


class ProviderError(TwoFactorError):
    """Base class for provider selection errors."""


class ProviderUnavailableError(ProviderError):
    """Raised when a provider is not enabled or not configured for a user.

    Attributes:
        provider_key: Key of the provider that was requested.
    """

    def __init__(self, provider_key: str, message: str | None = None) -> None:
        super().__init__(
            message or f"Provider {provider_key!r} is not available for this user"
        )
        self.provider_key = provider_key


class ProviderRegistrationError(ProviderError):
    """Raised when two providers are registered under the same key."""


# ═══════════════════════════════════════════════════════════════
# COLLABORATOR ERRORS
# ═══════════════════════════════════════════════════════════════


class DeliveryError(TwoFactorError):
    """Raised when the mailer refuses to send a verification code."""


class StorageError(TwoFactorError):
    """Base class for attribute store failures."""


class StorageConflictError(StorageError):
    """Raised when a compare-and-set update keeps losing to concurrent writers."""


__all__: list[str] = [
    # Base
    "TwoFactorError",
    # Encoding
    "InvalidEncodingError",
    # Nonce / challenge
    "NonceError",
    "NonceExpiredError",
    "NonceMismatchError",
    "ChallengeExpiredError",
    # Security key
    "SignatureReplayError",
    "RegistrationError",
    # Provider
    "ProviderError",
    "ProviderUnavailableError",
    "ProviderRegistrationError",
    # Collaborators
    "DeliveryError",
    "StorageError",
    "StorageConflictError",
]
