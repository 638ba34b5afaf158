"""Login nonces.

A nonce ties the second step of a login to the first: it is issued after
the password check, carried by the two-factor form, and consumed by the
first attempt to use it, successful or not.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from .codec import constant_time_equals, hmac_digest
from .config import NonceConfig
from .exceptions import NonceError, NonceExpiredError, NonceMismatchError
from .storage import take_attribute, update_attribute

if TYPE_CHECKING:
    from .ports import IAttributeStore, IClock, IRandomSource

logger = logging.getLogger(__name__)

NONCE_ATTRIBUTE: Final = "two_factor-nonce"
NONCE_ENTROPY_BYTES: Final = 32


@dataclass(frozen=True)
class LoginNonce:
    """An issued login nonce."""

    key: str
    user_id: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class LoginNonceManager:
    """Issues and consumes per-user login nonces.

    Exactly one nonce is live per user; issuing a new one replaces it.

    Example:
        ```python
        nonces = LoginNonceManager(
            store,
            secret_key=settings.SECRET_KEY,
            clock=SystemClock(),
            random_source=SystemRandomSource(),
        )

        nonce = await nonces.issue("user-123")
        render_form(nonce.key)

        # On submit
        if not await nonces.verify("user-123", submitted_key):
            ...  # ask the user to log in again
        ```
    """

    def __init__(
        self,
        store: IAttributeStore,
        *,
        secret_key: bytes,
        clock: IClock,
        random_source: IRandomSource,
        config: NonceConfig | None = None,
    ) -> None:
        self.store = store
        self.secret_key = secret_key
        self.clock = clock
        self.random_source = random_source
        self.config = config or NonceConfig()

    def _generate_key(self, user_id: str) -> str:
        message = b"|".join(
            [
                user_id.encode("utf-8"),
                self.random_source.token_bytes(NONCE_ENTROPY_BYTES),
                str(time.time_ns()).encode("ascii"),
            ]
        )
        return hmac_digest(self.secret_key, message, "sha256").hex()

    async def issue(self, user_id: str) -> LoginNonce:
        """Create a nonce, replacing any previous one for the user."""
        nonce = LoginNonce(
            key=self._generate_key(user_id),
            user_id=user_id,
            expires_at=self.clock.now() + self.config.ttl_seconds,
        )
        record = {"key": nonce.key, "expires_at": nonce.expires_at}
        await update_attribute(self.store, user_id, NONCE_ATTRIBUTE, lambda _: record)
        logger.debug("Login nonce issued for user %s", user_id)
        return nonce

    async def consume(self, user_id: str, key: str) -> LoginNonce:
        """Invalidate the stored nonce and check the submitted key.

        The stored nonce is removed before any check, so it can never be
        used twice.

        Raises:
            NonceMismatchError: If no nonce is stored or the key differs.
            NonceExpiredError: If the key matched but the nonce expired.
        """
        stored = await take_attribute(self.store, user_id, NONCE_ATTRIBUTE)
        if stored is None:
            raise NonceMismatchError("No login nonce is pending for this user")
        if not constant_time_equals(str(stored["key"]), key or ""):
            raise NonceMismatchError("Login nonce does not match")

        nonce = LoginNonce(
            key=str(stored["key"]),
            user_id=user_id,
            expires_at=float(stored["expires_at"]),
        )
        if nonce.is_expired(self.clock.now()):
            raise NonceExpiredError("Login nonce has expired")
        return nonce

    async def verify(self, user_id: str, key: str) -> bool:
        """Consume the nonce and report whether it was valid."""
        try:
            await self.consume(user_id, key)
        except NonceError as e:
            logger.debug("Login nonce rejected for user %s: %s", user_id, e)
            return False
        return True

    async def invalidate(self, user_id: str) -> bool:
        """Drop any pending nonce for the user."""
        return await self.store.delete(user_id, NONCE_ATTRIBUTE)


__all__: list[str] = [
    "NONCE_ATTRIBUTE",
    "LoginNonce",
    "LoginNonceManager",
]
