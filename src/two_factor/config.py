"""Configuration for the two-factor engine.

Plain frozen dataclasses, validated on construction. The host application
builds one ``TwoFactorConfig`` at start-up and hands it to
``two_factor.factory.create_two_factor``.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class TotpConfig:
    """TOTP configuration.

    Attributes:
        issuer: Issuer shown in authenticator apps.
        digits: Number of digits in a code.
        digest: HMAC hash name.
        step_seconds: Length of one time step.
        tolerance_steps: Accepted clock drift, in steps either side of now.
        secret_bits: Size of generated secrets.
    """

    issuer: str = "two-factor"
    digits: int = 6
    digest: str = "sha1"
    step_seconds: int = 30
    tolerance_steps: int = 4
    secret_bits: int = 160

    def __post_init__(self) -> None:
        if not 6 <= self.digits <= 10:
            raise ValueError("TOTP digits must be between 6 and 10")
        if self.step_seconds <= 0:
            raise ValueError("TOTP step_seconds must be positive")
        if self.tolerance_steps < 0:
            raise ValueError("TOTP tolerance_steps must not be negative")
        if self.secret_bits < 80:
            raise ValueError("TOTP secret_bits must be at least 80")


@dataclass(frozen=True)
class EmailOtpConfig:
    """Email OTP configuration.

    Attributes:
        site_name: Site name used in the email subject.
        code_length: Number of digits in a token.
        ttl_seconds: Lifetime of an issued token.
    """

    site_name: str = "two-factor"
    code_length: int = 8
    ttl_seconds: int = 900  # 15 minutes

    def __post_init__(self) -> None:
        if self.code_length < 6:
            raise ValueError("Email code_length must be at least 6")
        if self.ttl_seconds <= 0:
            raise ValueError("Email ttl_seconds must be positive")


@dataclass(frozen=True)
class BackupCodesConfig:
    """Backup codes configuration.

    Attributes:
        count: Default number of codes per generation.
        code_length: Digits per code.
        bcrypt_rounds: bcrypt cost factor.
    """

    count: int = 10
    code_length: int = 8
    bcrypt_rounds: int = 12

    def __post_init__(self) -> None:
        if self.count <= 0:
            raise ValueError("Backup code count must be positive")
        if self.code_length < 6:
            raise ValueError("Backup code_length must be at least 6")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")


@dataclass(frozen=True)
class ChallengeKeyConfig:
    """Security key (U2F) configuration.

    Attributes:
        app_id: Application id / facet, e.g. ``https://example.com``.
        challenge_ttl_seconds: Lifetime of a pending challenge.
    """

    app_id: str = "https://localhost"
    challenge_ttl_seconds: int = 300

    def __post_init__(self) -> None:
        if not self.app_id:
            raise ValueError("Security key app_id is required")
        if self.challenge_ttl_seconds <= 0:
            raise ValueError("challenge_ttl_seconds must be positive")


@dataclass(frozen=True)
class NonceConfig:
    """Login nonce configuration.

    Attributes:
        ttl_seconds: Lifetime of a login nonce.
    """

    ttl_seconds: int = 300  # 5 minutes

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ValueError("Nonce ttl_seconds must be positive")


@dataclass(frozen=True)
class TwoFactorConfig:
    """Top-level configuration.

    Attributes:
        secret_key: Site secret keying nonce and email-token HMACs.
        totp: TOTP settings.
        email: Email OTP settings.
        backup_codes: Backup code settings.
        challenge_key: Security key settings.
        nonce: Login nonce settings.
    """

    secret_key: bytes
    totp: TotpConfig = field(default_factory=TotpConfig)
    email: EmailOtpConfig = field(default_factory=EmailOtpConfig)
    backup_codes: BackupCodesConfig = field(default_factory=BackupCodesConfig)
    challenge_key: ChallengeKeyConfig = field(default_factory=ChallengeKeyConfig)
    nonce: NonceConfig = field(default_factory=NonceConfig)

    def __post_init__(self) -> None:
        if isinstance(self.secret_key, str):
            object.__setattr__(self, "secret_key", self.secret_key.encode("utf-8"))
        if len(self.secret_key) < 16:
            raise ValueError("secret_key must be at least 16 bytes")


__all__: list[str] = [
    "TotpConfig",
    "EmailOtpConfig",
    "BackupCodesConfig",
    "ChallengeKeyConfig",
    "NonceConfig",
    "TwoFactorConfig",
]
