"""Email OTP provider.

Generates a numeric code, stores only its HMAC, and delegates sending
to the application via IMailer. Works with any mail transport the
application implements (SMTP, SES, SendGrid, ...).
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Final

from ..codec import constant_time_equals, hmac_digest, random_numeric_code
from ..config import EmailOtpConfig
from ..exceptions import DeliveryError, ProviderUnavailableError
from ..storage import take_attribute, update_attribute
from .base import Capability, ChallengePayload, Proof, TwoFactorProvider, proof_as_text

if TYPE_CHECKING:
    from ..ports import IAttributeStore, IClock, IMailer, IRandomSource, IUserDirectory

logger = logging.getLogger(__name__)

EMAIL_TOKEN_ATTRIBUTE: Final = "_two_factor_email_token"

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s.]+$")


def is_valid_email(address: str | None) -> bool:
    """Check that an address looks like ``local@domain.tld``."""
    return address is not None and bool(_EMAIL_PATTERN.match(address))


class EmailOtpProvider(TwoFactorProvider):
    """Email verification code provider.

    Each issued token overwrites the previous one and is consumed by the
    first verification attempt, whether it succeeds or not.

    Example:
        ```python
        email_otp = EmailOtpProvider(
            store,
            mailer=MyMailer(),
            directory=MyUserDirectory(),
            clock=SystemClock(),
            random_source=SystemRandomSource(),
            secret_key=settings.SECRET_KEY,
        )

        await email_otp.render_challenge("user-123")  # sends the code
        if await email_otp.verify("user-123", submitted):
            print("Verified!")
        ```
    """

    priority = 60
    capabilities = frozenset({Capability.OTP})

    def __init__(
        self,
        store: IAttributeStore,
        *,
        mailer: IMailer,
        directory: IUserDirectory,
        clock: IClock,
        random_source: IRandomSource,
        secret_key: bytes,
        config: EmailOtpConfig | None = None,
    ) -> None:
        self.store = store
        self.mailer = mailer
        self.directory = directory
        self.clock = clock
        self.random_source = random_source
        self.secret_key = secret_key
        self.config = config or EmailOtpConfig()

    @property
    def label(self) -> str:
        return "Email"

    @property
    def description(self) -> str:
        return "Receive a one-time code by email."

    def _hash_token(self, token: str) -> str:
        return hmac_digest(self.secret_key, token.encode("utf-8"), "sha256").hex()

    async def issue(self, user_id: str) -> str:
        """Generate, store and mail a new token.

        Returns:
            The plaintext token (already sent to the user).

        Raises:
            ProviderUnavailableError: If the user has no valid email address.
            DeliveryError: If the mailer refused the message.
        """
        address = await self.directory.get_email(user_id)
        if address is None or not is_valid_email(address):
            raise ProviderUnavailableError(
                self.key, "No valid email address on file for this user"
            )

        token = random_numeric_code(self.random_source, self.config.code_length)
        record = {
            "hash": self._hash_token(token),
            "expires_at": self.clock.now() + self.config.ttl_seconds,
        }
        await update_attribute(
            self.store, user_id, EMAIL_TOKEN_ATTRIBUTE, lambda _: record
        )

        subject = f"Your login confirmation code for {self.config.site_name}"
        body = f"Enter {token} to log in."
        if not await self.mailer.send(address, subject, body):
            # Only withdraw our own token, not one issued concurrently.
            await self.store.compare_and_set(user_id, EMAIL_TOKEN_ATTRIBUTE, record, None)
            raise DeliveryError("The verification email could not be sent")

        logger.debug("Email token issued for user %s", user_id)
        return token

    async def has_pending_token(self, user_id: str) -> bool:
        return await self.store.get(user_id, EMAIL_TOKEN_ATTRIBUTE) is not None

    async def is_available_for_user(self, user_id: str) -> bool:
        return is_valid_email(await self.directory.get_email(user_id))

    async def render_challenge(self, user_id: str) -> ChallengePayload:
        await self.issue(user_id)
        return ChallengePayload(
            provider_key=self.key,
            prompt="A verification code has been sent to the email address "
            "associated with your account.",
            data={"code_length": self.config.code_length},
        )

    async def verify(self, user_id: str, proof: Proof) -> bool:
        record = await take_attribute(self.store, user_id, EMAIL_TOKEN_ATTRIBUTE)
        if record is None:
            return False

        token = proof_as_text(proof)
        if not constant_time_equals(self._hash_token(token), str(record["hash"])):
            return False
        if self.clock.now() > float(record["expires_at"]):
            logger.debug("Expired email token submitted for user %s", user_id)
            return False
        return True

    async def delete_user_data(self, user_id: str) -> None:
        await self.store.delete(user_id, EMAIL_TOKEN_ATTRIBUTE)


__all__: list[str] = [
    "EMAIL_TOKEN_ATTRIBUTE",
    "EmailOtpProvider",
    "is_valid_email",
]
