"""Two-factor login flow.

``AuthenticationSession`` drives one login attempt after the password
check: it picks the provider to challenge, binds the attempt to a login
nonce, lets the user switch to a backup method, and validates the
submitted proof.

States of an attempt::

    NOT_STARTED -> CHALLENGE_ISSUED -> VERIFIED
                                    -> REJECTED -> CHALLENGE_ISSUED ...
                                    -> EXPIRED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from .audit.events import (
    challenge_issued_event,
    nonce_rejected_event,
    replay_detected_event,
    verify_failed_event,
    verify_success_event,
)
from .exceptions import (
    ChallengeExpiredError,
    NonceError,
    NonceExpiredError,
    ProviderUnavailableError,
    SignatureReplayError,
)
from .observability import TwoFactorMetrics, TwoFactorTracing

if TYPE_CHECKING:
    from .audit.events import TwoFactorAuditEvent
    from .nonce import LoginNonce, LoginNonceManager
    from .ports import IAuditStore, IClock
    from .providers.base import (
        ChallengePayload,
        Proof,
        ProviderDescriptor,
        TwoFactorProvider,
    )
    from .registry import ProviderRegistry

logger = logging.getLogger(__name__)

INVALID_CODE_MESSAGE = "Invalid verification code."
EXPIRED_MESSAGE = "Your login attempt has expired. Please log in again."


class AttemptState(Enum):
    """State of one two-factor login attempt."""

    NOT_STARTED = "not_started"
    CHALLENGE_ISSUED = "challenge_issued"
    VERIFIED = "verified"
    REJECTED = "rejected"
    EXPIRED = "expired"


@dataclass(frozen=True)
class LoginRequest:
    """Request context of a login attempt, passed explicitly.

    Attributes:
        user_id: User who passed the first factor.
        redirect_to: Where to send the user after logging in.
        remember_me: Whether the session cookie should be persistent.
        interim_login: Whether this is a re-authentication popup.
        ip_address: Client IP address (audit only).
        user_agent: Client user agent (audit only).
    """

    user_id: str
    redirect_to: str = ""
    remember_me: bool = False
    interim_login: bool = False
    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AuthenticationStep:
    """Outcome of one session call, telling the caller what to render.

    Attributes:
        state: New attempt state.
        request: The login request this step belongs to.
        two_factor_required: False when the user has no second factor.
        provider_key: Provider being challenged, if any.
        nonce: Nonce the next form submission must carry.
        challenge: What to render for the provider.
        backup_providers: Other providers the user may switch to.
        message: User-facing error text, if any.
    """

    state: AttemptState
    request: LoginRequest
    two_factor_required: bool = True
    provider_key: str | None = None
    nonce: LoginNonce | None = None
    challenge: ChallengePayload | None = None
    backup_providers: tuple[ProviderDescriptor, ...] = ()
    message: str | None = None

    @property
    def is_verified(self) -> bool:
        return self.state is AttemptState.VERIFIED

    @property
    def login_complete(self) -> bool:
        """Whether the caller may now establish the authenticated session."""
        return self.is_verified or not self.two_factor_required


class AuthenticationSession:
    """Two-factor login state machine.

    Example:
        ```python
        session = AuthenticationSession(registry, nonces, clock=SystemClock())

        step = await session.begin(LoginRequest(user_id="user-123"))
        if step.login_complete:
            ...  # no second factor configured

        step = await session.validate(request, form["nonce"], form["code"])
        if step.is_verified:
            ...  # set the auth cookie and redirect to request.redirect_to
        ```
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        nonces: LoginNonceManager,
        *,
        clock: IClock,
        audit_store: IAuditStore | None = None,
    ) -> None:
        self.registry = registry
        self.nonces = nonces
        self.clock = clock
        self.audit_store = audit_store

    async def _record(self, event: TwoFactorAuditEvent) -> None:
        TwoFactorMetrics.record_event(event)
        if self.audit_store is not None:
            await self.audit_store.record(event)

    async def _challenge(
        self,
        request: LoginRequest,
        provider: TwoFactorProvider,
        *,
        state: AttemptState = AttemptState.CHALLENGE_ISSUED,
        message: str | None = None,
    ) -> AuthenticationStep:
        user_id = request.user_id
        nonce = await self.nonces.issue(user_id)
        with TwoFactorTracing.challenge_span(provider.key, user_id=user_id):
            with TwoFactorMetrics.operation("challenge", provider=provider.key):
                challenge = await provider.render_challenge(user_id)
        backups = await self.registry.backup_providers_for_user(user_id, provider)
        await self._record(
            challenge_issued_event(
                user_id,
                provider.key,
                at=self.clock.now(),
                ip_address=request.ip_address,
                user_agent=request.user_agent,
            )
        )
        logger.debug("Challenge issued for user %s with %s", user_id, provider.key)
        return AuthenticationStep(
            state=state,
            request=request,
            provider_key=provider.key,
            nonce=nonce,
            challenge=challenge,
            backup_providers=tuple(backup.descriptor() for backup in backups),
            message=message,
        )

    async def _consume_nonce(
        self, request: LoginRequest, nonce_key: str
    ) -> AuthenticationStep | None:
        try:
            await self.nonces.consume(request.user_id, nonce_key)
        except NonceError as e:
            code = "NONCE_EXPIRED" if isinstance(e, NonceExpiredError) else "NONCE_MISMATCH"
            await self._record(
                nonce_rejected_event(
                    request.user_id,
                    at=self.clock.now(),
                    error_code=code,
                    ip_address=request.ip_address,
                    user_agent=request.user_agent,
                )
            )
            logger.info("Login nonce rejected for user %s (%s)", request.user_id, code)
            return AuthenticationStep(
                state=AttemptState.EXPIRED,
                request=request,
                message=EXPIRED_MESSAGE,
            )
        return None

    async def begin(self, request: LoginRequest) -> AuthenticationStep:
        """Start the second step after a successful password check.

        Returns:
            A NOT_STARTED step with ``two_factor_required=False`` when the
            user has no usable provider, otherwise the primary provider's
            challenge.
        """
        primary = await self.registry.primary_for_user(request.user_id)
        if primary is None:
            return AuthenticationStep(
                state=AttemptState.NOT_STARTED,
                request=request,
                two_factor_required=False,
            )
        return await self._challenge(request, primary)

    async def select_provider(
        self,
        request: LoginRequest,
        nonce: str,
        provider_key: str,
    ) -> AuthenticationStep:
        """Switch the attempt to another (backup) provider.

        Raises:
            ProviderUnavailableError: If the provider is not available.
        """
        expired = await self._consume_nonce(request, nonce)
        if expired is not None:
            return expired
        provider = await self.registry.provider_for_user(request.user_id, provider_key)
        return await self._challenge(request, provider)

    async def validate(
        self,
        request: LoginRequest,
        nonce: str,
        proof: Proof,
        provider_key: str | None = None,
    ) -> AuthenticationStep:
        """Check a submitted proof.

        Args:
            request: Login request context.
            nonce: Nonce from the submitted form.
            proof: Code or signed response.
            provider_key: Provider the form was rendered for (default primary).

        Returns:
            VERIFIED on success, REJECTED with a fresh nonce and challenge
            on a wrong proof, EXPIRED when the nonce or challenge is stale.

        Raises:
            SignatureReplayError: If a security key counter did not advance.
            ProviderUnavailableError: If the provider is not available.
        """
        user_id = request.user_id
        expired = await self._consume_nonce(request, nonce)
        if expired is not None:
            return expired

        provider: TwoFactorProvider | None
        if provider_key:
            provider = await self.registry.provider_for_user(user_id, provider_key)
        else:
            provider = await self.registry.primary_for_user(user_id)
        if provider is None:
            raise ProviderUnavailableError(
                "", "No two-factor provider is available for this user"
            )

        try:
            with TwoFactorTracing.verify_span(provider.key, user_id=user_id) as span:
                with TwoFactorMetrics.operation("verify", provider=provider.key):
                    accepted = await provider.verify(user_id, proof)
                TwoFactorTracing.set_result(span, accepted)
        except SignatureReplayError as e:
            await self._record(
                replay_detected_event(
                    user_id,
                    provider.key,
                    e.key_handle,
                    e.stored_counter,
                    e.received_counter,
                    at=self.clock.now(),
                    ip_address=request.ip_address,
                    user_agent=request.user_agent,
                )
            )
            logger.warning(
                "Signature counter replay for user %s (stored=%d, received=%d)",
                user_id,
                e.stored_counter,
                e.received_counter,
            )
            raise
        except ChallengeExpiredError:
            await self._record(
                verify_failed_event(
                    user_id,
                    provider.key,
                    at=self.clock.now(),
                    error_code="CHALLENGE_EXPIRED",
                    ip_address=request.ip_address,
                    user_agent=request.user_agent,
                )
            )
            return AuthenticationStep(
                state=AttemptState.EXPIRED,
                request=request,
                provider_key=provider.key,
                message=EXPIRED_MESSAGE,
            )

        if accepted:
            await self._record(
                verify_success_event(
                    user_id,
                    provider.key,
                    at=self.clock.now(),
                    ip_address=request.ip_address,
                    user_agent=request.user_agent,
                )
            )
            logger.info("Two-factor login verified for user %s with %s", user_id, provider.key)
            return AuthenticationStep(
                state=AttemptState.VERIFIED,
                request=request,
                provider_key=provider.key,
            )

        await self._record(
            verify_failed_event(
                user_id,
                provider.key,
                at=self.clock.now(),
                ip_address=request.ip_address,
                user_agent=request.user_agent,
            )
        )
        logger.info("Two-factor login rejected for user %s with %s", user_id, provider.key)
        return await self._challenge(
            request,
            provider,
            state=AttemptState.REJECTED,
            message=INVALID_CODE_MESSAGE,
        )


__all__: list[str] = [
    "AttemptState",
    "LoginRequest",
    "AuthenticationStep",
    "AuthenticationSession",
]
