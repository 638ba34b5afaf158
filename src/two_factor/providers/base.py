"""Provider contract shared by every second factor.

A provider owns one verification strategy: how a user enrolls, what the
login page must render, and how a submitted proof is checked. The
registry and the login session only ever talk to this interface.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])|(?<=[A-Z0-9])(?=[A-Z][a-z])")
_INVALID_KEY_CHARS = re.compile(r"[^a-z0-9_]")

Proof = str | bytes | Mapping[str, Any]


class Capability(Enum):
    """What kind of proof a provider checks."""

    OTP = "otp"
    TIME_BASED_OTP = "time_based_otp"
    SINGLE_USE_CODE = "single_use_code"
    PUBLIC_KEY_CHALLENGE = "public_key_challenge"


@dataclass(frozen=True)
class ProviderDescriptor:
    """Immutable public description of a registered provider."""

    key: str
    label: str
    description: str
    priority: int
    capabilities: frozenset[Capability] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ChallengePayload:
    """What the login page must render for a provider.

    Attributes:
        provider_key: Provider that issued the challenge.
        prompt: Human-readable instruction for the user.
        data: Provider-specific values (e.g. a security key sign request).
    """

    provider_key: str
    prompt: str
    data: Mapping[str, Any] = field(default_factory=dict)


def make_provider_key(class_name: str) -> str:
    """Derive a stable provider key from a class name.

    ``EmailOtpProvider`` becomes ``email_otp``.
    """
    snake = _CAMEL_BOUNDARY.sub("_", class_name).lower()
    snake = _INVALID_KEY_CHARS.sub("", snake)
    if snake.endswith("_provider"):
        snake = snake[: -len("_provider")]
    return snake


def proof_as_text(proof: Proof, field_name: str = "code") -> str:
    """Normalize a submitted code to text without whitespace.

    Mappings are read at ``field_name``; missing values become ``""``.
    """
    if isinstance(proof, Mapping):
        proof = proof.get(field_name) or ""
    if isinstance(proof, bytes):
        proof = proof.decode("utf-8", errors="replace")
    return "".join(str(proof).split())


class TwoFactorProvider(ABC):
    """Base class for second-factor providers.

    Subclasses set ``priority`` (lower is tried first) and
    ``capabilities``; the provider ``key`` is derived from the class name
    unless a subclass assigns one explicitly.

    Example:
        ```python
        class SmsOtpProvider(TwoFactorProvider):
            priority = 50
            capabilities = frozenset({Capability.OTP})

            @property
            def label(self) -> str:
                return "SMS"
            ...
        ```
    """

    key: ClassVar[str] = ""
    priority: ClassVar[int] = 10
    capabilities: ClassVar[frozenset[Capability]] = frozenset()

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "key" not in cls.__dict__:
            cls.key = make_provider_key(cls.__name__)

    @property
    @abstractmethod
    def label(self) -> str:
        """Short name shown to users."""

    @property
    @abstractmethod
    def description(self) -> str:
        """One-line explanation shown on the settings page."""

    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            key=self.key,
            label=self.label,
            description=self.description,
            priority=self.priority,
            capabilities=frozenset(self.capabilities),
        )

    @abstractmethod
    async def is_available_for_user(self, user_id: str) -> bool:
        """Whether the user has enrolled and every precondition holds."""

    @abstractmethod
    async def render_challenge(self, user_id: str) -> ChallengePayload:
        """Prepare the login challenge (may send email or persist a challenge)."""

    @abstractmethod
    async def verify(self, user_id: str, proof: Proof) -> bool:
        """Check a submitted proof.

        Wrong input returns False. Structural problems (storage failure,
        replayed signature) raise.
        """

    async def option_details(self, user_id: str) -> str:
        """Extra status text for the user's settings page."""
        return ""

    async def management_actions(self, user_id: str) -> tuple[str, ...]:
        """Names of management actions offered on the settings page."""
        return ()

    async def delete_user_data(self, user_id: str) -> None:  # noqa: B027
        """Remove every piece of enrollment material for a user."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key={self.key!r}, priority={self.priority})"


__all__: list[str] = [
    "Capability",
    "ProviderDescriptor",
    "ChallengePayload",
    "Proof",
    "TwoFactorProvider",
    "make_provider_key",
    "proof_as_text",
]
