"""In-memory collaborator implementations for development and testing.

WARNING: These implementations are NOT suitable for production use.
They keep data in process memory and will NOT work with multiple workers.
"""

from __future__ import annotations

import copy
from typing import Any

from .ports import IAttributeStore, IMailer, ISiteAllowListStore, IUserDirectory


class InMemoryAttributeStore(IAttributeStore):
    """In-memory user attribute store for TESTING ONLY.

    Values are deep-copied on the way in and out so that callers cannot
    mutate stored state through aliases, which would defeat
    ``compare_and_set``. Each method body runs without awaiting, so it is
    atomic with respect to other coroutines on the same event loop.

    Example:
        ```python
        store = InMemoryAttributeStore()
        await store.set("user-1", "two_factor-provider", "totp")
        swapped = await store.compare_and_set(
            "user-1", "two_factor-provider", "totp", "backup_codes"
        )
        ```
    """

    def __init__(self) -> None:
        self._data: dict[str, dict[str, Any]] = {}

    async def get(self, user_id: str, key: str) -> Any | None:
        return copy.deepcopy(self._data.get(user_id, {}).get(key))

    async def set(self, user_id: str, key: str, value: Any) -> bool:
        self._data.setdefault(user_id, {})[key] = copy.deepcopy(value)
        return True

    async def delete(self, user_id: str, key: str) -> bool:
        user_data = self._data.get(user_id)
        if user_data is None or key not in user_data:
            return False
        del user_data[key]
        return True

    async def compare_and_set(
        self,
        user_id: str,
        key: str,
        expected: Any | None,
        new: Any | None,
    ) -> bool:
        user_data = self._data.setdefault(user_id, {})
        if user_data.get(key) != expected:
            return False
        if new is None:
            user_data.pop(key, None)
        else:
            user_data[key] = copy.deepcopy(new)
        return True

    def keys_for(self, user_id: str) -> set[str]:
        """Get the attribute keys stored for a user (test helper)."""
        return set(self._data.get(user_id, {}))

    def clear_all(self) -> None:
        """Clear all stored attributes."""
        self._data.clear()


class InMemorySiteAllowListStore(ISiteAllowListStore):
    """In-memory site-wide provider allow-list for TESTING ONLY."""

    def __init__(self, keys: frozenset[str] | None = None) -> None:
        self._keys: frozenset[str] = frozenset(keys or ())

    async def get(self) -> frozenset[str]:
        return self._keys

    async def set_if_absent(self, keys: frozenset[str]) -> bool:
        if self._keys:
            return False
        self._keys = frozenset(keys)
        return True

    def replace(self, keys: frozenset[str]) -> None:
        """Overwrite the allow-list (admin settings page stand-in)."""
        self._keys = frozenset(keys)


class RecordingMailer(IMailer):
    """Mailer that records messages instead of sending them.

    Attributes:
        sent: Delivered messages as ``(to_address, subject, body)``.
        accept: Return value of ``send``; set False to simulate a refusal.
    """

    def __init__(self, *, accept: bool = True) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.accept = accept

    async def send(self, to_address: str, subject: str, body: str) -> bool:
        if not self.accept:
            return False
        self.sent.append((to_address, subject, body))
        return True


class InMemoryUserDirectory(IUserDirectory):
    """In-memory user directory mapping user ids to email addresses."""

    def __init__(self, emails: dict[str, str] | None = None) -> None:
        self._emails: dict[str, str] = dict(emails or {})

    async def get_email(self, user_id: str) -> str | None:
        return self._emails.get(user_id)

    def set_email(self, user_id: str, email: str | None) -> None:
        if email is None:
            self._emails.pop(user_id, None)
        else:
            self._emails[user_id] = email


__all__: list[str] = [
    "InMemoryAttributeStore",
    "InMemorySiteAllowListStore",
    "RecordingMailer",
    "InMemoryUserDirectory",
]
