"""Atomic read-modify-write helpers over IAttributeStore.

Every mutation of per-user two-factor state (nonce issue/consume,
single-use code removal, signature counter bump) goes through these
helpers so that two racing requests can never both observe and consume
the same value.
"""

from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, Final

from .exceptions import StorageConflictError

if TYPE_CHECKING:
    from collections.abc import Callable

    from .ports import IAttributeStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS: Final = 5


class _Keep:
    def __repr__(self) -> str:
        return "KEEP"


#: Returned by a mutator to leave the stored value untouched.
KEEP: Final = _Keep()


async def update_attribute(
    store: IAttributeStore,
    user_id: str,
    key: str,
    mutate: Callable[[Any | None], Any | None],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Any | None:
    """Apply ``mutate`` to a stored attribute with compare-and-set.

    The mutator receives a private copy of the current value (None when
    absent) and returns the replacement (None deletes, ``KEEP`` skips the
    write). It is re-run on the fresh value whenever another writer wins
    the race, so it must be free of side effects.

    Args:
        store: Attribute store.
        user_id: User identifier.
        key: Attribute key.
        mutate: Pure function from current to new value.
        max_attempts: Compare-and-set attempts before giving up.

    Returns:
        The value now stored (the current value when ``KEEP`` was returned).

    Raises:
        StorageConflictError: If every attempt lost to a concurrent writer.
    """
    for attempt in range(1, max_attempts + 1):
        current = await store.get(user_id, key)
        new = mutate(copy.deepcopy(current))
        if new is KEEP:
            return current
        if await store.compare_and_set(user_id, key, current, new):
            return new
        logger.debug(
            "Concurrent update of %s for user %s, retrying (%d/%d)",
            key,
            user_id,
            attempt,
            max_attempts,
        )
    raise StorageConflictError(
        f"Could not update {key!r} after {max_attempts} attempts"
    )


async def take_attribute(
    store: IAttributeStore,
    user_id: str,
    key: str,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Any | None:
    """Atomically read and delete an attribute.

    Exactly one of several concurrent callers receives the stored value;
    the others receive None.

    Raises:
        StorageConflictError: If every attempt lost to a concurrent writer.
    """
    for _ in range(max_attempts):
        current = await store.get(user_id, key)
        if current is None:
            return None
        if await store.compare_and_set(user_id, key, current, None):
            return current
    raise StorageConflictError(f"Could not take {key!r} after {max_attempts} attempts")


__all__: list[str] = [
    "DEFAULT_MAX_ATTEMPTS",
    "KEEP",
    "update_attribute",
    "take_attribute",
]
