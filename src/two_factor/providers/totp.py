"""TOTP (Time-based One-Time Password) provider.

Works with any RFC 6238 authenticator app (Google Authenticator,
Microsoft Authenticator, Authy, FreeOTP, 1Password).

Uses pyotp for the HOTP computation and provisioning URIs.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Final

import pyotp

from ..codec import base32_decode, base32_encode, constant_time_equals, is_base32
from ..config import TotpConfig
from ..exceptions import InvalidEncodingError
from ..storage import update_attribute
from .base import Capability, ChallengePayload, Proof, TwoFactorProvider, proof_as_text

if TYPE_CHECKING:
    from ..ports import IAttributeStore, IClock, IRandomSource

logger = logging.getLogger(__name__)

TOTP_KEY_ATTRIBUTE: Final = "two_factor-totp_key"

_DIGESTS: Final[dict[str, Any]] = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
    "sha512": hashlib.sha512,
}


@dataclass(frozen=True)
class TotpEnrollment:
    """Data needed to configure an authenticator app.

    Attributes:
        secret: Base32 secret, submitted back with the first code.
        provisioning_uri: otpauth:// URI for QR code generation.
        manual_key: Secret formatted in groups of 4 for manual entry.
    """

    secret: str
    provisioning_uri: str
    manual_key: str


def _canonical_secret(secret: str) -> str:
    # pyotp needs valid base32 padding; re-encoding the decoded bytes
    # accepts any secret length the decoder accepts.
    return base32_encode(base32_decode(secret))


def _format_secret(secret: str) -> str:
    secret = secret.rstrip("=")
    return " ".join(secret[i : i + 4] for i in range(0, len(secret), 4))


class TotpProvider(TwoFactorProvider):
    """Authenticator app provider.

    The secret is stored base32-encoded under ``two_factor-totp_key`` and
    is only persisted once the user has proven possession with one valid
    code.

    Example:
        ```python
        totp = TotpProvider(store, clock=SystemClock(), random_source=rng)

        enrollment = await totp.begin_enrollment("user-123", "alice@example.com")
        show_qr(enrollment.provisioning_uri)

        if await totp.complete_enrollment("user-123", enrollment.secret, code):
            print("Authenticator app configured")
        ```
    """

    priority = 40
    capabilities = frozenset({Capability.OTP, Capability.TIME_BASED_OTP})

    def __init__(
        self,
        store: IAttributeStore,
        *,
        clock: IClock,
        random_source: IRandomSource,
        config: TotpConfig | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.random_source = random_source
        self.config = config or TotpConfig()

    @property
    def label(self) -> str:
        return "Time Based One-Time Password (TOTP)"

    @property
    def description(self) -> str:
        return "Use an authenticator app to generate a code every 30 seconds."

    # ═══════════════════════════════════════════════════════════════
    # CODE MATH
    # ═══════════════════════════════════════════════════════════════

    def generate_secret(self, bit_length: int | None = None) -> str:
        """Generate a random base32 secret.

        Args:
            bit_length: Secret size in bits (default from config, 160).
        """
        bits = bit_length or self.config.secret_bits
        return base32_encode(self.random_source.token_bytes(math.ceil(bits / 8)))

    def current_step(self, step_seconds: int | None = None) -> int:
        return int(self.clock.now() // (step_seconds or self.config.step_seconds))

    def compute_code(
        self,
        secret: str,
        time_step_index: int | None = None,
        *,
        digits: int | None = None,
        digest: str | None = None,
        step_seconds: int | None = None,
    ) -> str:
        """Compute the zero-padded code for one time step.

        Args:
            secret: Base32 secret.
            time_step_index: Step counter; defaults to the current step.
            digits: Code length (default from config).
            digest: HMAC hash name (default from config).
            step_seconds: Step length used when deriving the current step.

        Raises:
            InvalidEncodingError: If the secret is not base32.
            ValueError: If the digest is unsupported or the step is negative.
        """
        digest_name = (digest or self.config.digest).lower()
        digestmod = _DIGESTS.get(digest_name)
        if digestmod is None:
            raise ValueError(f"Unsupported TOTP digest: {digest_name}")
        if time_step_index is None:
            time_step_index = self.current_step(step_seconds)

        hotp = pyotp.HOTP(
            _canonical_secret(secret),
            digits=digits or self.config.digits,
            digest=digestmod,
        )
        return str(hotp.at(time_step_index))

    def matching_step(
        self,
        secret: str,
        code: str,
        tolerance_steps: int | None = None,
    ) -> int | None:
        """Find the time step a code belongs to.

        Offsets are tried closest to now first; the first match wins.

        Returns:
            The matching step index, or None if no step in the window matches.
        """
        tolerance = (
            self.config.tolerance_steps if tolerance_steps is None else tolerance_steps
        )
        code = "".join(code.split())
        canonical = _canonical_secret(secret)
        now_step = self.current_step()

        for offset in sorted(range(-tolerance, tolerance + 1), key=abs):
            step = now_step + offset
            if step < 0:
                continue
            if constant_time_equals(self.compute_code(canonical, step), code):
                return step
        return None

    def is_valid_code(
        self,
        secret: str,
        code: str,
        tolerance_steps: int | None = None,
    ) -> bool:
        """Check a code against the window around the current step."""
        return self.matching_step(secret, code, tolerance_steps) is not None

    # ═══════════════════════════════════════════════════════════════
    # ENROLLMENT
    # ═══════════════════════════════════════════════════════════════

    def provisioning_uri(self, secret: str, account_name: str) -> str:
        """Build the otpauth:// URI for a secret."""
        totp = pyotp.TOTP(
            _canonical_secret(secret),
            digits=self.config.digits,
            digest=_DIGESTS[self.config.digest.lower()],
            interval=self.config.step_seconds,
        )
        return totp.provisioning_uri(name=account_name, issuer_name=self.config.issuer)

    async def begin_enrollment(self, user_id: str, account_name: str) -> TotpEnrollment:
        """Generate a secret for the user to add to an app.

        Nothing is persisted until ``complete_enrollment`` succeeds.
        """
        secret = self.generate_secret()
        logger.debug("TOTP enrollment started for user %s", user_id)
        return TotpEnrollment(
            secret=secret,
            provisioning_uri=self.provisioning_uri(secret, account_name or user_id),
            manual_key=_format_secret(secret),
        )

    async def complete_enrollment(
        self,
        user_id: str,
        secret: str,
        code: str,
        account_name: str = "",
    ) -> bool:
        """Persist a secret once the user proves possession of it.

        Returns:
            True if the code was valid and the secret was stored.

        Raises:
            InvalidEncodingError: If the secret is not base32.
        """
        if not secret or not is_base32(secret):
            raise InvalidEncodingError("Invalid characters in the TOTP secret")
        if not self.is_valid_code(secret, code):
            return False

        record = {"secret": secret.upper().rstrip("="), "label": account_name}
        await update_attribute(
            self.store, user_id, TOTP_KEY_ATTRIBUTE, lambda _: record
        )
        logger.info("TOTP enrolled for user %s", user_id)
        return True

    async def get_secret(self, user_id: str) -> str | None:
        record = await self.store.get(user_id, TOTP_KEY_ATTRIBUTE)
        if not record:
            return None
        return str(record["secret"])

    async def delete_user_data(self, user_id: str) -> None:
        if await self.store.delete(user_id, TOTP_KEY_ATTRIBUTE):
            logger.info("TOTP removed for user %s", user_id)

    # ═══════════════════════════════════════════════════════════════
    # PROVIDER CONTRACT
    # ═══════════════════════════════════════════════════════════════

    async def is_available_for_user(self, user_id: str) -> bool:
        return await self.get_secret(user_id) is not None

    async def render_challenge(self, user_id: str) -> ChallengePayload:
        return ChallengePayload(
            provider_key=self.key,
            prompt="Please enter the code generated by your authenticator app.",
            data={"digits": self.config.digits},
        )

    async def verify(self, user_id: str, proof: Proof) -> bool:
        secret = await self.get_secret(user_id)
        if secret is None:
            return False
        return self.is_valid_code(secret, proof_as_text(proof))

    async def option_details(self, user_id: str) -> str:
        record = await self.store.get(user_id, TOTP_KEY_ATTRIBUTE)
        if not record:
            return ""
        return f"Account Tag: {record.get('label') or user_id}"

    async def management_actions(self, user_id: str) -> tuple[str, ...]:
        if await self.is_available_for_user(user_id):
            return ("Remove",)
        return ("Setup App",)


__all__: list[str] = [
    "TOTP_KEY_ATTRIBUTE",
    "TotpEnrollment",
    "TotpProvider",
]
