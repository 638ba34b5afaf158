"""Second-factor providers.

Supports:
- Security keys (FIDO U2F public-key challenge)
- TOTP (Google Authenticator, Microsoft Authenticator, Authy, etc.)
- Email OTP (via the application's mailer)
- Backup codes (single-use recovery codes)
"""

from .backup_codes import BACKUP_CODES_ATTRIBUTE, BackupCodesProvider, GenerationMode
from .base import (
    Capability,
    ChallengePayload,
    Proof,
    ProviderDescriptor,
    TwoFactorProvider,
    make_provider_key,
)
from .challenge_key import (
    AuthenticationRequest,
    ChallengeKeyProvider,
    KeyRecord,
    RegistrationRequest,
)
from .email import EMAIL_TOKEN_ATTRIBUTE, EmailOtpProvider
from .totp import TOTP_KEY_ATTRIBUTE, TotpEnrollment, TotpProvider

__all__: list[str] = [
    # Contract
    "TwoFactorProvider",
    "ProviderDescriptor",
    "ChallengePayload",
    "Capability",
    "Proof",
    "make_provider_key",
    # Security keys
    "ChallengeKeyProvider",
    "KeyRecord",
    "RegistrationRequest",
    "AuthenticationRequest",
    # TOTP
    "TotpProvider",
    "TotpEnrollment",
    "TOTP_KEY_ATTRIBUTE",
    # Email OTP
    "EmailOtpProvider",
    "EMAIL_TOKEN_ATTRIBUTE",
    # Backup codes
    "BackupCodesProvider",
    "GenerationMode",
    "BACKUP_CODES_ATTRIBUTE",
]
