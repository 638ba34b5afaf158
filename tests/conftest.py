"""Test configuration and fixtures."""

from __future__ import annotations

import hashlib
import json
import os
from datetime import datetime, timezone
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat
from cryptography.x509.oid import NameOID

from two_factor.audit import InMemoryAuditStore
from two_factor.codec import websafe_b64encode
from two_factor.config import (
    BackupCodesConfig,
    ChallengeKeyConfig,
    TwoFactorConfig,
)
from two_factor.hasher import CodeHasher
from two_factor.memory import (
    InMemoryAttributeStore,
    InMemorySiteAllowListStore,
    InMemoryUserDirectory,
    RecordingMailer,
)
from two_factor.nonce import LoginNonceManager
from two_factor.providers import (
    BackupCodesProvider,
    ChallengeKeyProvider,
    EmailOtpProvider,
    TotpProvider,
)
from two_factor.providers.u2f import AUTHENTICATION_TYPE, REGISTRATION_TYPE
from two_factor.registry import ProviderRegistry
from two_factor.session import AuthenticationSession
from two_factor.sources import FrozenClock, SystemRandomSource

APP_ID = "https://example.com"
SECRET_KEY = b"test-secret-key-0123456789abcdef"
USER_ID = "user-123"
USER_EMAIL = "alice@example.com"


class FakeSecurityKey:
    """Software U2F authenticator producing raw registration/sign responses."""

    def __init__(self, app_id: str = APP_ID) -> None:
        self.app_id = app_id
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        self.attestation_key = ec.generate_private_key(ec.SECP256R1())
        self.key_handle = os.urandom(32)
        self.counter = 0
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "Fake U2F Key")])
        self.certificate = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self.attestation_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(datetime(2020, 1, 1, tzinfo=timezone.utc))
            .not_valid_after(datetime(2040, 1, 1, tzinfo=timezone.utc))
            .sign(self.attestation_key, hashes.SHA256())
            .public_bytes(Encoding.DER)
        )

    @property
    def public_key(self) -> bytes:
        return self.private_key.public_key().public_bytes(
            Encoding.X962, PublicFormat.UncompressedPoint
        )

    @property
    def handle(self) -> str:
        return websafe_b64encode(self.key_handle)

    def _client_data(self, typ: str, challenge: str) -> bytes:
        return json.dumps(
            {"typ": typ, "challenge": challenge, "origin": self.app_id}
        ).encode()

    def register(
        self,
        challenge: str,
        *,
        signed_app_id: str | None = None,
        typ: str = REGISTRATION_TYPE,
    ) -> dict[str, Any]:
        client_data = self._client_data(typ, challenge)
        signed = b"".join(
            [
                b"\x00",
                hashlib.sha256((signed_app_id or self.app_id).encode()).digest(),
                hashlib.sha256(client_data).digest(),
                self.key_handle,
                self.public_key,
            ]
        )
        signature = self.attestation_key.sign(signed, ec.ECDSA(hashes.SHA256()))
        raw = b"".join(
            [
                b"\x05",
                self.public_key,
                bytes([len(self.key_handle)]),
                self.key_handle,
                self.certificate,
                signature,
            ]
        )
        return {
            "version": "U2F_V2",
            "registrationData": websafe_b64encode(raw),
            "clientData": websafe_b64encode(client_data),
        }

    def sign(
        self,
        challenge: str,
        *,
        counter: int | None = None,
        user_presence: int = 1,
        signed_app_id: str | None = None,
        typ: str = AUTHENTICATION_TYPE,
    ) -> dict[str, Any]:
        if counter is None:
            counter = self.counter + 1
        self.counter = max(self.counter, counter)
        client_data = self._client_data(typ, challenge)
        counter_bytes = counter.to_bytes(4, "big")
        signed = b"".join(
            [
                hashlib.sha256((signed_app_id or self.app_id).encode()).digest(),
                bytes([user_presence]),
                counter_bytes,
                hashlib.sha256(client_data).digest(),
            ]
        )
        signature = self.private_key.sign(signed, ec.ECDSA(hashes.SHA256()))
        return {
            "keyHandle": self.handle,
            "clientData": websafe_b64encode(client_data),
            "signatureData": websafe_b64encode(
                bytes([user_presence]) + counter_bytes + signature
            ),
        }


@pytest.fixture
def store() -> InMemoryAttributeStore:
    return InMemoryAttributeStore()


@pytest.fixture
def allow_list() -> InMemorySiteAllowListStore:
    return InMemorySiteAllowListStore()


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(1_700_000_000)


@pytest.fixture
def random_source() -> SystemRandomSource:
    return SystemRandomSource()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def directory() -> InMemoryUserDirectory:
    return InMemoryUserDirectory({USER_ID: USER_EMAIL})


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def config() -> TwoFactorConfig:
    """Configuration with a cheap bcrypt cost for fast tests."""
    return TwoFactorConfig(
        secret_key=SECRET_KEY,
        backup_codes=BackupCodesConfig(bcrypt_rounds=4),
        challenge_key=ChallengeKeyConfig(app_id=APP_ID),
    )


@pytest.fixture
def totp(store, clock, random_source, config) -> TotpProvider:
    return TotpProvider(
        store, clock=clock, random_source=random_source, config=config.totp
    )


@pytest.fixture
def email_otp(
    store, mailer, directory, clock, random_source, config
) -> EmailOtpProvider:
    return EmailOtpProvider(
        store,
        mailer=mailer,
        directory=directory,
        clock=clock,
        random_source=random_source,
        secret_key=config.secret_key,
        config=config.email,
    )


@pytest.fixture
def backup_codes(store, random_source, config) -> BackupCodesProvider:
    return BackupCodesProvider(
        store,
        random_source=random_source,
        hasher=CodeHasher(rounds=4),
        config=config.backup_codes,
    )


@pytest.fixture
def challenge_key(store, clock, random_source, config) -> ChallengeKeyProvider:
    return ChallengeKeyProvider(
        store,
        clock=clock,
        random_source=random_source,
        config=config.challenge_key,
    )


@pytest.fixture
def security_key() -> FakeSecurityKey:
    return FakeSecurityKey()


@pytest.fixture
def registry(
    store, allow_list, totp, email_otp, backup_codes, challenge_key
) -> ProviderRegistry:
    return ProviderRegistry(
        store, allow_list, [backup_codes, email_otp, totp, challenge_key]
    )


@pytest.fixture
def nonces(store, clock, random_source, config) -> LoginNonceManager:
    return LoginNonceManager(
        store,
        secret_key=config.secret_key,
        clock=clock,
        random_source=random_source,
        config=config.nonce,
    )


@pytest.fixture
def session(registry, nonces, clock, audit_store) -> AuthenticationSession:
    return AuthenticationSession(
        registry, nonces, clock=clock, audit_store=audit_store
    )
