"""Security key provider (FIDO U2F public-key challenge).

Registration stores the authenticator's public key and attestation
certificate; each login signs a fresh server challenge. The signature
counter must strictly increase, otherwise the key may have been cloned
and ``SignatureReplayError`` is raised.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Final

from ..codec import websafe_b64decode, websafe_b64encode
from ..config import ChallengeKeyConfig
from ..exceptions import (
    ChallengeExpiredError,
    InvalidEncodingError,
    ProviderUnavailableError,
    RegistrationError,
    SignatureReplayError,
)
from ..storage import DEFAULT_MAX_ATTEMPTS, KEEP, take_attribute, update_attribute
from . import u2f
from .base import Capability, ChallengePayload, Proof, TwoFactorProvider

if TYPE_CHECKING:
    from ..ports import IAttributeStore, IClock, IRandomSource

logger = logging.getLogger(__name__)

KEYS_ATTRIBUTE: Final = "two_factor-u2f_key"
AUTHENTICATION_REQUEST_ATTRIBUTE: Final = "two_factor-u2f_request"
REGISTRATION_REQUEST_ATTRIBUTE: Final = "two_factor-u2f_register_request"

CHALLENGE_BYTES: Final = 32


# ═══════════════════════════════════════════════════════════════
# KEY RECORDS AND REQUESTS
# ═══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class KeyRecord:
    """A registered security key.

    Attributes:
        key_handle: Opaque handle the authenticator uses to find its key.
        public_key: Uncompressed P-256 public key.
        certificate: DER attestation certificate.
        counter: Last accepted signature counter.
        label: User-visible name.
        created_at: Registration time (epoch seconds).
        last_used_at: Last successful authentication (epoch seconds).
    """

    key_handle: bytes
    public_key: bytes
    certificate: bytes
    counter: int = 0
    label: str = ""
    created_at: float = 0.0
    last_used_at: float = 0.0

    def __post_init__(self) -> None:
        if self.counter < 0:
            raise ValueError("Signature counter must not be negative")

    @property
    def handle(self) -> str:
        """Websafe-base64 key handle, as sent to clients."""
        return websafe_b64encode(self.key_handle)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key_handle": websafe_b64encode(self.key_handle),
            "public_key": websafe_b64encode(self.public_key),
            "certificate": websafe_b64encode(self.certificate),
            "counter": self.counter,
            "label": self.label,
            "created_at": self.created_at,
            "last_used_at": self.last_used_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KeyRecord:
        return cls(
            key_handle=websafe_b64decode(data["key_handle"]),
            public_key=websafe_b64decode(data["public_key"]),
            certificate=websafe_b64decode(data["certificate"]),
            counter=int(data.get("counter", 0)),
            label=str(data.get("label", "")),
            created_at=float(data.get("created_at", 0.0)),
            last_used_at=float(data.get("last_used_at", 0.0)),
        )


@dataclass(frozen=True)
class RegistrationRequest:
    """What the client needs to register a new key."""

    version: str
    app_id: str
    challenge: str
    existing_key_handles: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "appId": self.app_id,
            "challenge": self.challenge,
            "registeredKeys": [
                {"version": self.version, "keyHandle": handle}
                for handle in self.existing_key_handles
            ],
        }


@dataclass(frozen=True)
class AuthenticationRequest:
    """What the client needs to sign a login challenge."""

    version: str
    app_id: str
    challenge: str
    allowed_key_handles: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "appId": self.app_id,
            "challenge": self.challenge,
            "registeredKeys": [
                {"version": self.version, "keyHandle": handle}
                for handle in self.allowed_key_handles
            ],
        }


def _response_mapping(response: Mapping[str, Any] | str | bytes) -> Mapping[str, Any]:
    if isinstance(response, bytes):
        response = response.decode("utf-8")
    if isinstance(response, str):
        try:
            response = json.loads(response)
        except json.JSONDecodeError as e:
            raise InvalidEncodingError("Security key response is not JSON") from e
    if not isinstance(response, Mapping):
        raise InvalidEncodingError("Security key response must be an object")
    return response


def _always() -> bool:
    return True


class ChallengeKeyProvider(TwoFactorProvider):
    """FIDO U2F security key provider.

    Example:
        ```python
        keys = ChallengeKeyProvider(
            store,
            clock=SystemClock(),
            random_source=SystemRandomSource(),
            config=ChallengeKeyConfig(app_id="https://example.com"),
        )

        request = await keys.start_registration("user-123")
        # ... browser calls u2f.register(request.to_dict()) ...
        record = await keys.complete_registration("user-123", browser_response)
        ```
    """

    priority = 20
    capabilities = frozenset({Capability.PUBLIC_KEY_CHALLENGE})

    def __init__(
        self,
        store: IAttributeStore,
        *,
        clock: IClock,
        random_source: IRandomSource,
        config: ChallengeKeyConfig | None = None,
        transport_is_secure: Callable[[], bool] | None = None,
        client_supported: Callable[[], bool] | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.store = store
        self.clock = clock
        self.random_source = random_source
        self.config = config or ChallengeKeyConfig()
        self.transport_is_secure = transport_is_secure or self._app_id_is_https
        self.client_supported = client_supported or _always
        self.max_attempts = max_attempts

    @property
    def label(self) -> str:
        return "FIDO U2F Security Keys"

    @property
    def description(self) -> str:
        return "Use a hardware security key that signs a login challenge."

    @property
    def app_id(self) -> str:
        return self.config.app_id

    def _app_id_is_https(self) -> bool:
        return self.app_id.startswith("https://")

    def _new_challenge(self) -> str:
        return websafe_b64encode(self.random_source.token_bytes(CHALLENGE_BYTES))

    def _expires_at(self) -> float:
        return self.clock.now() + self.config.challenge_ttl_seconds

    def _is_expired(self, pending: Mapping[str, Any]) -> bool:
        return self.clock.now() > float(pending.get("expires_at", 0.0))

    # ═══════════════════════════════════════════════════════════════
    # KEY STORAGE
    # ═══════════════════════════════════════════════════════════════

    async def list_keys(self, user_id: str) -> list[KeyRecord]:
        stored = await self.store.get(user_id, KEYS_ATTRIBUTE) or []
        return [KeyRecord.from_dict(item) for item in stored]

    async def add_key(self, user_id: str, record: KeyRecord) -> KeyRecord:
        """Append a key record.

        Raises:
            RegistrationError: If the key handle is already registered.
        """

        def mutate(current: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
            current = current or []
            if any(item["key_handle"] == record.handle for item in current):
                raise RegistrationError("This security key is already registered")
            return [*current, record.to_dict()]

        await update_attribute(
            self.store, user_id, KEYS_ATTRIBUTE, mutate, max_attempts=self.max_attempts
        )
        return record

    async def update_key(self, user_id: str, record: KeyRecord) -> bool:
        """Replace the stored record with the same key handle.

        Returns:
            True if a matching key was found.
        """
        found = False

        def mutate(current: list[dict[str, Any]] | None) -> Any:
            nonlocal found
            found = False
            updated = []
            for item in current or []:
                if item["key_handle"] == record.handle:
                    found = True
                    updated.append(record.to_dict())
                else:
                    updated.append(item)
            return updated if found else KEEP

        await update_attribute(
            self.store, user_id, KEYS_ATTRIBUTE, mutate, max_attempts=self.max_attempts
        )
        return found

    async def rename_key(self, user_id: str, key_handle: str, label: str) -> bool:
        for record in await self.list_keys(user_id):
            if record.handle == key_handle:
                return await self.update_key(user_id, replace(record, label=label))
        return False

    async def delete_key(self, user_id: str, key_handle: str) -> bool:
        """Remove a key by its websafe-base64 handle.

        Returns:
            True if a key was removed.
        """
        removed = False

        def mutate(current: list[dict[str, Any]] | None) -> Any:
            nonlocal removed
            current = current or []
            remaining = [item for item in current if item["key_handle"] != key_handle]
            removed = len(remaining) != len(current)
            if not removed:
                return KEEP
            return remaining or None

        await update_attribute(
            self.store, user_id, KEYS_ATTRIBUTE, mutate, max_attempts=self.max_attempts
        )
        if removed:
            logger.info("Security key removed for user %s", user_id)
        return removed

    # ═══════════════════════════════════════════════════════════════
    # REGISTRATION
    # ═══════════════════════════════════════════════════════════════

    async def start_registration(self, user_id: str) -> RegistrationRequest:
        """Persist a fresh registration challenge for the user."""
        challenge = self._new_challenge()
        request = {"challenge": challenge, "expires_at": self._expires_at()}
        await update_attribute(
            self.store, user_id, REGISTRATION_REQUEST_ATTRIBUTE, lambda _: request
        )
        keys = await self.list_keys(user_id)
        return RegistrationRequest(
            version=u2f.U2F_VERSION,
            app_id=self.app_id,
            challenge=challenge,
            existing_key_handles=tuple(key.handle for key in keys),
        )

    async def complete_registration(
        self,
        user_id: str,
        response: Mapping[str, Any] | str | bytes,
    ) -> KeyRecord:
        """Validate a registration response and store the new key.

        The pending request is consumed whatever the outcome.

        Raises:
            RegistrationError: If there is no pending request or the
                response does not validate.
            ChallengeExpiredError: If the pending request has expired.
        """
        pending = await take_attribute(self.store, user_id, REGISTRATION_REQUEST_ATTRIBUTE)
        if pending is None:
            raise RegistrationError("No pending security key registration")
        if self._is_expired(pending):
            raise ChallengeExpiredError("The registration request has expired")

        try:
            data = _response_mapping(response)
            if data.get("errorCode"):
                raise RegistrationError(
                    f"Security key reported error {data['errorCode']}"
                )
            client_raw, client_data = u2f.decode_client_data(str(data["clientData"]))
            registration = u2f.parse_registration_data(
                websafe_b64decode(str(data["registrationData"]))
            )
        except (KeyError, InvalidEncodingError, UnicodeDecodeError) as e:
            raise RegistrationError("Malformed registration response") from e

        if not u2f.client_data_matches(
            client_data,
            expected_type=u2f.REGISTRATION_TYPE,
            challenge=str(pending["challenge"]),
            app_id=self.app_id,
        ):
            raise RegistrationError("Registration client data does not match")
        if not u2f.verify_registration(self.app_id, client_raw, registration):
            raise RegistrationError("Attestation signature is invalid")

        now = self.clock.now()
        handle = websafe_b64encode(registration.key_handle)

        def mutate(current: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
            current = current or []
            if any(item["key_handle"] == handle for item in current):
                raise RegistrationError("This security key is already registered")
            record = KeyRecord(
                key_handle=registration.key_handle,
                public_key=registration.public_key,
                certificate=registration.certificate,
                counter=0,
                label=f"Security Key {len(current) + 1}",
                created_at=now,
                last_used_at=now,
            )
            return [*current, record.to_dict()]

        stored = await update_attribute(
            self.store, user_id, KEYS_ATTRIBUTE, mutate, max_attempts=self.max_attempts
        )
        record = KeyRecord.from_dict(stored[-1])
        logger.info("Security key registered for user %s", user_id)
        return record

    # ═══════════════════════════════════════════════════════════════
    # AUTHENTICATION
    # ═══════════════════════════════════════════════════════════════

    async def start_authentication(self, user_id: str) -> AuthenticationRequest:
        """Persist a fresh login challenge bound to the user's keys.

        Raises:
            ProviderUnavailableError: If the user has no registered keys.
        """
        keys = await self.list_keys(user_id)
        if not keys:
            raise ProviderUnavailableError(self.key, "No security keys registered")

        challenge = self._new_challenge()
        handles = tuple(key.handle for key in keys)
        request = {
            "challenge": challenge,
            "key_handles": list(handles),
            "expires_at": self._expires_at(),
        }
        await update_attribute(
            self.store, user_id, AUTHENTICATION_REQUEST_ATTRIBUTE, lambda _: request
        )
        return AuthenticationRequest(
            version=u2f.U2F_VERSION,
            app_id=self.app_id,
            challenge=challenge,
            allowed_key_handles=handles,
        )

    async def complete_authentication(
        self,
        user_id: str,
        response: Mapping[str, Any] | str | bytes,
    ) -> bool:
        """Validate a signed login challenge.

        Returns:
            True if the signature is valid and the counter advanced.

        Raises:
            ChallengeExpiredError: If the pending request has expired.
            SignatureReplayError: If a valid signature carried a counter
                not greater than the stored one.
        """
        pending = await take_attribute(
            self.store, user_id, AUTHENTICATION_REQUEST_ATTRIBUTE
        )
        if pending is None:
            return False
        if self._is_expired(pending):
            raise ChallengeExpiredError("The authentication request has expired")

        try:
            data = _response_mapping(response)
            if data.get("errorCode"):
                return False
            handle = str(data["keyHandle"])
            client_raw, client_data = u2f.decode_client_data(str(data["clientData"]))
            signature = u2f.parse_signature_data(
                websafe_b64decode(str(data["signatureData"]))
            )
        except (KeyError, InvalidEncodingError, UnicodeDecodeError):
            logger.debug("Malformed security key response for user %s", user_id)
            return False

        if handle not in pending.get("key_handles", []):
            return False
        record = next(
            (key for key in await self.list_keys(user_id) if key.handle == handle),
            None,
        )
        if record is None:
            return False
        if not u2f.client_data_matches(
            client_data,
            expected_type=u2f.AUTHENTICATION_TYPE,
            challenge=str(pending["challenge"]),
            app_id=self.app_id,
        ):
            return False
        if not signature.user_present:
            return False
        if not u2f.verify_authentication(
            self.app_id, client_raw, signature, record.public_key
        ):
            return False

        now = self.clock.now()

        def mutate(current: list[dict[str, Any]] | None) -> Any:
            updated = []
            matched = False
            for item in current or []:
                if item["key_handle"] == handle:
                    matched = True
                    stored_counter = int(item.get("counter", 0))
                    if signature.counter <= stored_counter:
                        raise SignatureReplayError(
                            handle, stored_counter, signature.counter
                        )
                    item = {**item, "counter": signature.counter, "last_used_at": now}
                updated.append(item)
            return updated if matched else KEEP

        stored = await update_attribute(
            self.store, user_id, KEYS_ATTRIBUTE, mutate, max_attempts=self.max_attempts
        )
        return any(item["key_handle"] == handle for item in stored or [])

    # ═══════════════════════════════════════════════════════════════
    # PROVIDER CONTRACT
    # ═══════════════════════════════════════════════════════════════

    async def is_available_for_user(self, user_id: str) -> bool:
        if not self.transport_is_secure() or not self.client_supported():
            return False
        return bool(await self.store.get(user_id, KEYS_ATTRIBUTE))

    async def render_challenge(self, user_id: str) -> ChallengePayload:
        request = await self.start_authentication(user_id)
        return ChallengePayload(
            provider_key=self.key,
            prompt="Now insert (and tap) your Security Key.",
            data=request.to_dict(),
        )

    async def verify(self, user_id: str, proof: Proof) -> bool:
        return await self.complete_authentication(user_id, proof)

    async def delete_user_data(self, user_id: str) -> None:
        for key in (
            KEYS_ATTRIBUTE,
            AUTHENTICATION_REQUEST_ATTRIBUTE,
            REGISTRATION_REQUEST_ATTRIBUTE,
        ):
            await self.store.delete(user_id, key)

    async def option_details(self, user_id: str) -> str:
        keys = await self.list_keys(user_id)
        if not keys:
            return "No security keys registered."
        noun = "key" if len(keys) == 1 else "keys"
        return f"{len(keys)} security {noun} registered."

    async def management_actions(self, user_id: str) -> tuple[str, ...]:
        if not self._app_id_is_https():
            return ()
        return ("Register New Key",)


__all__: list[str] = [
    "KEYS_ATTRIBUTE",
    "AUTHENTICATION_REQUEST_ATTRIBUTE",
    "REGISTRATION_REQUEST_ATTRIBUTE",
    "KeyRecord",
    "RegistrationRequest",
    "AuthenticationRequest",
    "ChallengeKeyProvider",
]
