"""two_factor - provider-agnostic two-factor authentication engine.

Enrolls second factors (security keys, TOTP apps, email codes, backup
codes), issues single-use login nonces, verifies submitted proofs and
picks the provider to challenge by priority with backup fallback.

Storage, mail delivery and the login pages belong to the host
application; it supplies them through the ports in ``two_factor.ports``.
"""

from __future__ import annotations

from .audit import InMemoryAuditStore, TwoFactorAuditEvent, TwoFactorEventType
from .config import (
    BackupCodesConfig,
    ChallengeKeyConfig,
    EmailOtpConfig,
    NonceConfig,
    TotpConfig,
    TwoFactorConfig,
)
from .exceptions import (
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
from .factory import TwoFactor, create_default_providers, create_two_factor
from .hasher import CodeHasher
from .memory import (
    InMemoryAttributeStore,
    InMemorySiteAllowListStore,
    InMemoryUserDirectory,
    RecordingMailer,
)
from .nonce import LoginNonce, LoginNonceManager
from .ports import (
    IAttributeStore,
    IAuditStore,
    IClock,
    IMailer,
    IRandomSource,
    ISiteAllowListStore,
    IUserDirectory,
)
from .providers import (
    BackupCodesProvider,
    Capability,
    ChallengeKeyProvider,
    ChallengePayload,
    EmailOtpProvider,
    GenerationMode,
    KeyRecord,
    ProviderDescriptor,
    TotpEnrollment,
    TotpProvider,
    TwoFactorProvider,
)
from .registry import ProviderRegistry
from .session import AttemptState, AuthenticationSession, AuthenticationStep, LoginRequest
from .sources import FrozenClock, SystemClock, SystemRandomSource

__version__ = "0.1.0"

__all__: list[str] = [
    # Engine
    "TwoFactor",
    "create_two_factor",
    "create_default_providers",
    "ProviderRegistry",
    "LoginNonce",
    "LoginNonceManager",
    "AuthenticationSession",
    "AuthenticationStep",
    "AttemptState",
    "LoginRequest",
    # Providers
    "TwoFactorProvider",
    "ProviderDescriptor",
    "ChallengePayload",
    "Capability",
    "ChallengeKeyProvider",
    "KeyRecord",
    "TotpProvider",
    "TotpEnrollment",
    "EmailOtpProvider",
    "BackupCodesProvider",
    "GenerationMode",
    "CodeHasher",
    # Configuration
    "TwoFactorConfig",
    "TotpConfig",
    "EmailOtpConfig",
    "BackupCodesConfig",
    "ChallengeKeyConfig",
    "NonceConfig",
    # Ports
    "IAttributeStore",
    "ISiteAllowListStore",
    "IMailer",
    "IUserDirectory",
    "IClock",
    "IRandomSource",
    "IAuditStore",
    # Adapters
    "InMemoryAttributeStore",
    "InMemorySiteAllowListStore",
    "RecordingMailer",
    "InMemoryUserDirectory",
    "SystemClock",
    "FrozenClock",
    "SystemRandomSource",
    # Audit
    "TwoFactorEventType",
    "TwoFactorAuditEvent",
    "InMemoryAuditStore",
    # Exceptions
    "TwoFactorError",
    "InvalidEncodingError",
    "NonceError",
    "NonceExpiredError",
    "NonceMismatchError",
    "ChallengeExpiredError",
    "SignatureReplayError",
    "RegistrationError",
    "ProviderError",
    "ProviderUnavailableError",
    "ProviderRegistrationError",
    "DeliveryError",
    "StorageError",
    "StorageConflictError",
]
