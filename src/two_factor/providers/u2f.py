"""FIDO U2F raw message codec and signature checks.

Parses the binary registration and signature responses produced by U2F
(``U2F_V2``) security keys and verifies their ECDSA P-256 signatures
with ``cryptography``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any, Final

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from ..codec import constant_time_equals, websafe_b64decode
from ..exceptions import InvalidEncodingError

U2F_VERSION: Final = "U2F_V2"
REGISTRATION_TYPE: Final = "navigator.id.finishEnrollment"
AUTHENTICATION_TYPE: Final = "navigator.id.getAssertion"

PUBLIC_KEY_LENGTH: Final = 65
USER_PRESENT: Final = 0x01
_REGISTRATION_RESERVED: Final = 0x05


@dataclass(frozen=True)
class RegistrationData:
    """Decoded U2F registration response.

    Attributes:
        public_key: Uncompressed P-256 point (65 bytes).
        key_handle: Opaque key handle chosen by the authenticator.
        certificate: DER attestation certificate.
        signature: Attestation signature.
    """

    public_key: bytes
    key_handle: bytes
    certificate: bytes
    signature: bytes


@dataclass(frozen=True)
class SignatureData:
    """Decoded U2F authentication response."""

    user_presence: int
    counter: int
    signature: bytes

    @property
    def user_present(self) -> bool:
        return bool(self.user_presence & USER_PRESENT)


def _der_length(data: bytes) -> int:
    """Total length (header included) of the DER element at the start of data."""
    if len(data) < 2:
        raise InvalidEncodingError("Truncated attestation certificate")
    first = data[1]
    if first < 0x80:
        return 2 + first
    size = first & 0x7F
    if size == 0 or len(data) < 2 + size:
        raise InvalidEncodingError("Invalid attestation certificate length")
    return 2 + size + int.from_bytes(data[2 : 2 + size], "big")


def parse_registration_data(raw: bytes) -> RegistrationData:
    """Split raw registration data into its fields.

    Layout: ``0x05 | public key (65) | key handle length (1) | key handle |
    attestation certificate (DER) | signature``.

    Raises:
        InvalidEncodingError: If the data is truncated or malformed.
    """
    if len(raw) < 1 + PUBLIC_KEY_LENGTH + 1 or raw[0] != _REGISTRATION_RESERVED:
        raise InvalidEncodingError("Invalid registration data header")

    offset = 1
    public_key = raw[offset : offset + PUBLIC_KEY_LENGTH]
    offset += PUBLIC_KEY_LENGTH
    handle_length = raw[offset]
    offset += 1
    key_handle = raw[offset : offset + handle_length]
    offset += handle_length
    if len(key_handle) != handle_length or handle_length == 0:
        raise InvalidEncodingError("Truncated key handle")

    cert_length = _der_length(raw[offset:])
    certificate = raw[offset : offset + cert_length]
    offset += cert_length
    signature = raw[offset:]
    if len(certificate) != cert_length or not signature:
        raise InvalidEncodingError("Truncated registration data")

    return RegistrationData(
        public_key=public_key,
        key_handle=key_handle,
        certificate=certificate,
        signature=signature,
    )


def parse_signature_data(raw: bytes) -> SignatureData:
    """Split raw signature data: ``presence (1) | counter (4) | signature``.

    Raises:
        InvalidEncodingError: If the data is too short.
    """
    if len(raw) < 6:
        raise InvalidEncodingError("Invalid signature data")
    return SignatureData(
        user_presence=raw[0],
        counter=int.from_bytes(raw[1:5], "big"),
        signature=raw[5:],
    )


def load_public_key(public_key: bytes) -> ec.EllipticCurvePublicKey:
    """Load an uncompressed P-256 point.

    Raises:
        InvalidEncodingError: If the bytes are not a point on the curve.
    """
    try:
        return ec.EllipticCurvePublicKey.from_encoded_point(ec.SECP256R1(), public_key)
    except ValueError as e:
        raise InvalidEncodingError("Invalid security key public key") from e


def decode_client_data(encoded: str) -> tuple[bytes, dict[str, Any]]:
    """Decode websafe-base64 client data into raw bytes and parsed JSON.

    Raises:
        InvalidEncodingError: If the data is not valid base64 JSON.
    """
    raw = websafe_b64decode(encoded)
    try:
        parsed = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidEncodingError("Invalid client data") from e
    if not isinstance(parsed, dict):
        raise InvalidEncodingError("Invalid client data")
    return raw, parsed


def client_data_matches(
    client_data: dict[str, Any],
    *,
    expected_type: str,
    challenge: str,
    app_id: str,
) -> bool:
    """Check the client data type, challenge and (optional) origin."""
    if client_data.get("typ") != expected_type:
        return False
    if not constant_time_equals(str(client_data.get("challenge", "")), challenge):
        return False
    origin = client_data.get("origin")
    return origin is None or origin == app_id


def _sha256(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def verify_registration(
    app_id: str,
    client_data: bytes,
    registration: RegistrationData,
) -> bool:
    """Verify the attestation signature of a registration response.

    Signed data: ``0x00 | SHA256(app_id) | SHA256(client data) |
    key handle | public key``, checked with the attestation certificate.
    """
    try:
        load_public_key(registration.public_key)
        certificate = x509.load_der_x509_certificate(registration.certificate)
    except (InvalidEncodingError, ValueError):
        return False

    cert_key = certificate.public_key()
    if not isinstance(cert_key, ec.EllipticCurvePublicKey):
        return False

    signed = b"".join(
        [
            b"\x00",
            _sha256(app_id.encode("utf-8")),
            _sha256(client_data),
            registration.key_handle,
            registration.public_key,
        ]
    )
    try:
        cert_key.verify(registration.signature, signed, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


def verify_authentication(
    app_id: str,
    client_data: bytes,
    signature_data: SignatureData,
    public_key: bytes,
) -> bool:
    """Verify an authentication signature against a stored public key.

    Signed data: ``SHA256(app_id) | presence | counter | SHA256(client data)``.
    """
    try:
        key = load_public_key(public_key)
    except InvalidEncodingError:
        return False

    signed = b"".join(
        [
            _sha256(app_id.encode("utf-8")),
            bytes([signature_data.user_presence]),
            signature_data.counter.to_bytes(4, "big"),
            _sha256(client_data),
        ]
    )
    try:
        key.verify(signature_data.signature, signed, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


__all__: list[str] = [
    "U2F_VERSION",
    "REGISTRATION_TYPE",
    "AUTHENTICATION_TYPE",
    "PUBLIC_KEY_LENGTH",
    "RegistrationData",
    "SignatureData",
    "parse_registration_data",
    "parse_signature_data",
    "load_public_key",
    "decode_client_data",
    "client_data_matches",
    "verify_registration",
    "verify_authentication",
]
