"""Encoding and comparison primitives shared by the providers.

Base32 (RFC 4648, unpadded) carries TOTP secrets, websafe base64 carries
security key blobs, and every comparison of secret material goes through
``constant_time_equals``.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import re
from typing import TYPE_CHECKING

from .exceptions import InvalidEncodingError

if TYPE_CHECKING:
    from .ports import IRandomSource

BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"

_BASE32_PATTERN = re.compile(f"^[{BASE32_ALPHABET}]*$")
_WEBSAFE_B64_PATTERN = re.compile(r"^[A-Za-z0-9_-]*$")

_HASHES = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}


def base32_encode(data: bytes) -> str:
    """Encode bytes as unpadded base32.

    Args:
        data: Raw bytes.

    Returns:
        Base32 text using the ``A-Z2-7`` alphabet, without ``=`` padding.
    """
    return base64.b32encode(data).decode("ascii").rstrip("=")


def base32_decode(text: str) -> bytes:
    """Decode unpadded (or padded) base32 text.

    Decoding is case-insensitive. Leftover bits that do not fill a whole
    byte are dropped, so any length is accepted.

    Args:
        text: Base32 text.

    Returns:
        Decoded bytes.

    Raises:
        InvalidEncodingError: If a character is outside ``A-Z2-7``.
    """
    normalized = text.upper().rstrip("=")
    if not _BASE32_PATTERN.fullmatch(normalized):
        raise InvalidEncodingError("Invalid characters in the base32 string")

    buffer = 0
    bits = 0
    out = bytearray()
    for char in normalized:
        buffer = (buffer << 5) | BASE32_ALPHABET.index(char)
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((buffer >> bits) & 0xFF)
    return bytes(out)


def is_base32(text: str) -> bool:
    """Check whether text only uses the base32 alphabet."""
    return bool(_BASE32_PATTERN.fullmatch(text.upper().rstrip("=")))


def websafe_b64encode(data: bytes) -> str:
    """Encode bytes as URL-safe base64 without padding."""
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def websafe_b64decode(text: str) -> bytes:
    """Decode URL-safe base64, with or without padding.

    Raises:
        InvalidEncodingError: If the text is not valid websafe base64.
    """
    stripped = text.rstrip("=")
    if not _WEBSAFE_B64_PATTERN.fullmatch(stripped):
        raise InvalidEncodingError("Invalid websafe base64 data")
    padded = stripped + "=" * (-len(stripped) % 4)
    try:
        return base64.b64decode(padded, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidEncodingError("Invalid websafe base64 data") from e


def hmac_digest(key: bytes, message: bytes, hash_name: str = "sha1") -> bytes:
    """Compute an HMAC digest.

    Args:
        key: HMAC key.
        message: Message to authenticate.
        hash_name: One of ``sha1``, ``sha256``, ``sha512``.

    Returns:
        Raw digest bytes.

    Raises:
        ValueError: If the hash name is not supported.
    """
    digestmod = _HASHES.get(hash_name.lower())
    if digestmod is None:
        raise ValueError(f"Unsupported HMAC hash: {hash_name}")
    return hmac.new(key, message, digestmod).digest()


def constant_time_equals(a: bytes | str, b: bytes | str) -> bool:
    """Compare two secrets without short-circuiting on the first mismatch."""
    if isinstance(a, str):
        a = a.encode("utf-8")
    if isinstance(b, str):
        b = b.encode("utf-8")
    return hmac.compare_digest(a, b)


def random_numeric_code(random_source: IRandomSource, length: int = 8) -> str:
    """Generate a uniformly distributed decimal code.

    Bytes of 250 and above are rejected so every digit is equally likely.

    Args:
        random_source: Cryptographically secure byte source.
        length: Number of digits.

    Returns:
        Code of exactly ``length`` digits (leading zeros kept).
    """
    digits: list[str] = []
    while len(digits) < length:
        for byte in random_source.token_bytes(length):
            if byte < 250:
                digits.append(str(byte % 10))
                if len(digits) == length:
                    break
    return "".join(digits)


__all__: list[str] = [
    "BASE32_ALPHABET",
    "base32_encode",
    "base32_decode",
    "is_base32",
    "websafe_b64encode",
    "websafe_b64decode",
    "hmac_digest",
    "constant_time_equals",
    "random_numeric_code",
]
