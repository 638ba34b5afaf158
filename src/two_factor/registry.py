"""Provider registry.

Holds every provider the application registered at start-up and answers
which of them a given user can log in with, in priority order.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from .exceptions import ProviderRegistrationError, ProviderUnavailableError
from .storage import update_attribute

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from .ports import IAttributeStore, ISiteAllowListStore
    from .providers.base import TwoFactorProvider

logger = logging.getLogger(__name__)

PRIMARY_PROVIDER_ATTRIBUTE: Final = "two_factor-provider"
ENABLED_PROVIDERS_ATTRIBUTE: Final = "two_factor-enabled_providers"


class ProviderRegistry:
    """Registry of second-factor providers.

    Providers are ordered by ascending ``priority`` (lower is tried
    first), ties broken by key. A provider is usable by a user when it is
    enabled site-wide, enabled by the user, and configured for the user.

    Example:
        ```python
        registry = ProviderRegistry(store, allow_list)
        registry.register(totp)
        registry.register(backup_codes)

        primary = await registry.primary_for_user("user-123")
        if primary is None:
            ...  # no second factor, log straight in
        ```
    """

    def __init__(
        self,
        store: IAttributeStore,
        allow_list: ISiteAllowListStore,
        providers: Iterable[TwoFactorProvider] = (),
    ) -> None:
        self.store = store
        self.allow_list = allow_list
        self._providers: dict[str, TwoFactorProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: TwoFactorProvider) -> None:
        """Add a provider.

        Raises:
            ProviderRegistrationError: If the key is already registered.
        """
        if provider.key in self._providers:
            raise ProviderRegistrationError(
                f"A provider is already registered under {provider.key!r}"
            )
        self._providers[provider.key] = provider
        logger.debug("Registered provider %s", provider.key)

    def all_providers(self) -> list[TwoFactorProvider]:
        return sorted(self._providers.values(), key=lambda p: (p.priority, p.key))

    def keys(self) -> list[str]:
        return [provider.key for provider in self.all_providers()]

    def get(self, key: str) -> TwoFactorProvider:
        """Get a registered provider by key.

        Raises:
            ProviderUnavailableError: If no provider has this key.
        """
        try:
            return self._providers[key]
        except KeyError:
            raise ProviderUnavailableError(
                key, f"No provider registered under {key!r}"
            ) from None

    def __contains__(self, key: object) -> bool:
        return key in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    # ═══════════════════════════════════════════════════════════════
    # SITE-WIDE AND PER-USER ENABLEMENT
    # ═══════════════════════════════════════════════════════════════

    async def enabled_system_wide(self) -> frozenset[str]:
        """Provider keys enabled for the whole site.

        An empty allow-list is seeded once with every registered key.
        """
        keys = await self.allow_list.get()
        if keys:
            return keys
        if await self.allow_list.set_if_absent(frozenset(self._providers)):
            logger.warning(
                "Two-factor allow-list was empty, enabled all providers: %s",
                ", ".join(self.keys()),
            )
        return await self.allow_list.get()

    async def enabled_keys_for_user(self, user_id: str) -> list[str]:
        """Keys on the user's personal enable-list, as stored."""
        return list(await self.store.get(user_id, ENABLED_PROVIDERS_ATTRIBUTE) or [])

    async def preferred_key_for_user(self, user_id: str) -> str | None:
        return await self.store.get(user_id, PRIMARY_PROVIDER_ATTRIBUTE)

    async def enabled_for_user(self, user_id: str) -> list[TwoFactorProvider]:
        site_keys = await self.enabled_system_wide()
        user_keys = set(await self.enabled_keys_for_user(user_id))
        return [
            provider
            for provider in self.all_providers()
            if provider.key in site_keys and provider.key in user_keys
        ]

    async def available_for_user(self, user_id: str) -> list[TwoFactorProvider]:
        return [
            provider
            for provider in await self.enabled_for_user(user_id)
            if await provider.is_available_for_user(user_id)
        ]

    async def primary_for_user(self, user_id: str) -> TwoFactorProvider | None:
        """The provider a login challenges first.

        The user's stored preference wins while it is still available;
        otherwise the first available provider by priority.
        """
        available = await self.available_for_user(user_id)
        if not available:
            return None
        preferred = await self.preferred_key_for_user(user_id)
        for provider in available:
            if provider.key == preferred:
                return provider
        return available[0]

    async def provider_for_user(self, user_id: str, key: str) -> TwoFactorProvider:
        """Get a provider the user can log in with right now.

        Raises:
            ProviderUnavailableError: If it is not available for the user.
        """
        for provider in await self.available_for_user(user_id):
            if provider.key == key:
                return provider
        raise ProviderUnavailableError(key)

    async def backup_providers_for_user(
        self,
        user_id: str,
        active: TwoFactorProvider | str | None = None,
    ) -> list[TwoFactorProvider]:
        """Available providers other than the active one."""
        active_key = active if isinstance(active, str) or active is None else active.key
        return [
            provider
            for provider in await self.available_for_user(user_id)
            if provider.key != active_key
        ]

    async def is_using_two_factor(self, user_id: str) -> bool:
        return await self.primary_for_user(user_id) is not None

    async def set_enabled_for_user(self, user_id: str, keys: Iterable[str]) -> list[str]:
        """Store the user's personal enable-list.

        Unknown keys are dropped.

        Returns:
            The stored keys in priority order.
        """
        wanted = set(keys)
        _, enabled = await self._update_enabled(user_id, lambda _: wanted)
        logger.info("Enabled providers for user %s: %s", user_id, enabled)
        return enabled

    async def enable_for_user(
        self, user_id: str, key: str
    ) -> tuple[bool, list[str]]:
        """Add one provider to the user's enable-list.

        Returns:
            Whether the provider was newly enabled, and the stored keys in
            priority order.

        Raises:
            ProviderUnavailableError: If the key is not registered.
        """
        self.get(key)
        before, enabled = await self._update_enabled(
            user_id, lambda current: current | {key}
        )
        return key not in before, enabled

    async def disable_for_user(
        self, user_id: str, key: str
    ) -> tuple[bool, list[str]]:
        """Remove one provider from the user's enable-list.

        Returns:
            Whether the provider was enabled before, and the remaining keys.
        """
        before, enabled = await self._update_enabled(
            user_id, lambda current: current - {key}
        )
        return key in before, enabled

    async def _update_enabled(
        self,
        user_id: str,
        change: Callable[[set[str]], set[str]],
    ) -> tuple[list[str], list[str]]:
        before: list[str] = []

        def mutate(current: list[str] | None) -> list[str]:
            nonlocal before
            before = list(current or [])
            wanted = change(set(before))
            return [key for key in self.keys() if key in wanted]

        after = await update_attribute(
            self.store, user_id, ENABLED_PROVIDERS_ATTRIBUTE, mutate
        )
        return before, list(after or [])

    async def set_primary_for_user(self, user_id: str, key: str | None) -> None:
        """Store (or clear, with None) the user's preferred provider.

        Raises:
            ProviderUnavailableError: If the key is not registered.
        """
        if key is None:
            await self.store.delete(user_id, PRIMARY_PROVIDER_ATTRIBUTE)
            return
        self.get(key)
        await update_attribute(
            self.store, user_id, PRIMARY_PROVIDER_ATTRIBUTE, lambda _: key
        )

    async def delete_user(self, user_id: str) -> None:
        """Remove every provider's data and the user's preferences."""
        for provider in self.all_providers():
            await provider.delete_user_data(user_id)
        await self.store.delete(user_id, PRIMARY_PROVIDER_ATTRIBUTE)
        await self.store.delete(user_id, ENABLED_PROVIDERS_ATTRIBUTE)
        logger.info("Two-factor data deleted for user %s", user_id)


__all__: list[str] = [
    "PRIMARY_PROVIDER_ATTRIBUTE",
    "ENABLED_PROVIDERS_ATTRIBUTE",
    "ProviderRegistry",
]
