"""Factory functions for two-factor setup.

Wires providers, the registry, the nonce manager and the login session
from one ``TwoFactorConfig`` and the application's collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .audit.events import (
    backup_codes_generated_event,
    provider_enrolled_event,
    provider_removed_event,
)
from .exceptions import ProviderUnavailableError
from .hasher import CodeHasher
from .nonce import LoginNonceManager
from .observability import TwoFactorMetrics
from .providers.backup_codes import BackupCodesProvider, GenerationMode
from .providers.challenge_key import ChallengeKeyProvider
from .providers.email import EmailOtpProvider
from .providers.totp import TotpProvider
from .registry import ProviderRegistry
from .session import AuthenticationSession
from .sources import SystemClock, SystemRandomSource

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from .audit.events import TwoFactorAuditEvent
    from .config import TwoFactorConfig
    from .ports import (
        IAttributeStore,
        IAuditStore,
        IClock,
        IMailer,
        IRandomSource,
        ISiteAllowListStore,
        IUserDirectory,
    )
    from .providers.base import TwoFactorProvider


@dataclass
class TwoFactor:
    """The wired-up engine.

    Attributes:
        registry: Provider registry.
        nonces: Login nonce manager.
        session: Login state machine.
        clock: Clock used for audit timestamps.
        providers: Registered providers by key.
        audit_store: Where management events are recorded, if anywhere.
    """

    registry: ProviderRegistry
    nonces: LoginNonceManager
    session: AuthenticationSession
    clock: IClock
    providers: dict[str, TwoFactorProvider] = field(default_factory=dict)
    audit_store: IAuditStore | None = None

    async def _record(self, event: TwoFactorAuditEvent) -> None:
        TwoFactorMetrics.record_event(event)
        if self.audit_store is not None:
            await self.audit_store.record(event)

    async def enable_provider(
        self, user_id: str, key: str, *, primary: bool = False
    ) -> list[str]:
        """Turn a provider on for a user, optionally making it preferred.

        Returns:
            The user's enabled keys in priority order.

        Raises:
            ProviderUnavailableError: If the key is not registered.
        """
        added, enabled = await self.registry.enable_for_user(user_id, key)
        if primary:
            await self.registry.set_primary_for_user(user_id, key)
        if added:
            await self._record(
                provider_enrolled_event(user_id, key, at=self.clock.now())
            )
        return enabled

    async def disable_provider(self, user_id: str, key: str) -> list[str]:
        """Turn a provider off for a user.

        Enrollment material is kept; use ``delete_user`` to wipe it.
        """
        removed, enabled = await self.registry.disable_for_user(user_id, key)
        if await self.registry.preferred_key_for_user(user_id) == key:
            await self.registry.set_primary_for_user(user_id, None)
        if removed:
            await self._record(
                provider_removed_event(user_id, key, at=self.clock.now())
            )
        return enabled

    async def generate_backup_codes(
        self,
        user_id: str,
        count: int | None = None,
        mode: GenerationMode = GenerationMode.REPLACE,
    ) -> list[str]:
        """Generate backup codes and record the event.

        Raises:
            ProviderUnavailableError: If backup codes are not registered.
        """
        provider = self.registry.get(BackupCodesProvider.key)
        if not isinstance(provider, BackupCodesProvider):
            raise ProviderUnavailableError(provider.key)
        codes = await provider.generate(user_id, count, mode)
        await self._record(
            backup_codes_generated_event(
                user_id, len(codes), at=self.clock.now(), mode=mode.value
            )
        )
        return codes

    async def delete_user(self, user_id: str) -> None:
        """Remove every piece of two-factor state for a user."""
        await self.registry.delete_user(user_id)
        await self.nonces.invalidate(user_id)


def create_default_providers(
    store: IAttributeStore,
    config: TwoFactorConfig,
    *,
    clock: IClock,
    random_source: IRandomSource,
    mailer: IMailer | None = None,
    directory: IUserDirectory | None = None,
    transport_is_secure: Callable[[], bool] | None = None,
    client_supported: Callable[[], bool] | None = None,
) -> list[TwoFactorProvider]:
    """Create the built-in providers.

    The email provider is only created when both a mailer and a user
    directory are supplied.
    """
    providers: list[TwoFactorProvider] = [
        ChallengeKeyProvider(
            store,
            clock=clock,
            random_source=random_source,
            config=config.challenge_key,
            transport_is_secure=transport_is_secure,
            client_supported=client_supported,
        ),
        TotpProvider(
            store,
            clock=clock,
            random_source=random_source,
            config=config.totp,
        ),
    ]
    if mailer is not None and directory is not None:
        providers.append(
            EmailOtpProvider(
                store,
                mailer=mailer,
                directory=directory,
                clock=clock,
                random_source=random_source,
                secret_key=config.secret_key,
                config=config.email,
            )
        )
    providers.append(
        BackupCodesProvider(
            store,
            random_source=random_source,
            hasher=CodeHasher(rounds=config.backup_codes.bcrypt_rounds),
            config=config.backup_codes,
        )
    )
    return providers


def create_two_factor(
    config: TwoFactorConfig,
    *,
    store: IAttributeStore,
    allow_list: ISiteAllowListStore,
    mailer: IMailer | None = None,
    directory: IUserDirectory | None = None,
    clock: IClock | None = None,
    random_source: IRandomSource | None = None,
    audit_store: IAuditStore | None = None,
    extra_providers: Iterable[TwoFactorProvider] = (),
    transport_is_secure: Callable[[], bool] | None = None,
    client_supported: Callable[[], bool] | None = None,
) -> TwoFactor:
    """Create a fully wired two-factor engine.

    Example:
        ```python
        two_factor = create_two_factor(
            TwoFactorConfig(secret_key=settings.SECRET_KEY),
            store=PostgresAttributeStore(pool),
            allow_list=SettingsAllowList(),
            mailer=SmtpMailer(),
            directory=UserDirectory(),
        )

        step = await two_factor.session.begin(LoginRequest(user_id=user.id))
        ```

    Raises:
        ProviderRegistrationError: If an extra provider reuses a key.
    """
    clock = clock or SystemClock()
    random_source = random_source or SystemRandomSource()

    providers = create_default_providers(
        store,
        config,
        clock=clock,
        random_source=random_source,
        mailer=mailer,
        directory=directory,
        transport_is_secure=transport_is_secure,
        client_supported=client_supported,
    )
    providers.extend(extra_providers)

    registry = ProviderRegistry(store, allow_list, providers)
    nonces = LoginNonceManager(
        store,
        secret_key=config.secret_key,
        clock=clock,
        random_source=random_source,
        config=config.nonce,
    )
    session = AuthenticationSession(
        registry,
        nonces,
        clock=clock,
        audit_store=audit_store,
    )
    return TwoFactor(
        registry=registry,
        nonces=nonces,
        session=session,
        clock=clock,
        providers={provider.key: provider for provider in registry.all_providers()},
        audit_store=audit_store,
    )


__all__: list[str] = [
    "TwoFactor",
    "create_default_providers",
    "create_two_factor",
]
