"""Backup codes provider.

Single-use numeric codes a user can fall back on when their primary
device is unavailable. Codes are stored hashed (bcrypt) and each one is
removed the moment it is accepted.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Any, Final

from ..codec import random_numeric_code
from ..config import BackupCodesConfig
from ..exceptions import StorageConflictError
from ..hasher import CodeHasher
from ..storage import DEFAULT_MAX_ATTEMPTS, update_attribute
from .base import Capability, ChallengePayload, Proof, TwoFactorProvider, proof_as_text

if TYPE_CHECKING:
    from ..ports import IAttributeStore, IRandomSource

logger = logging.getLogger(__name__)

BACKUP_CODES_ATTRIBUTE: Final = "two_factor-backup_codes"


class GenerationMode(Enum):
    """What happens to unused codes when new ones are generated."""

    REPLACE = "replace"
    APPEND = "append"


class BackupCodesProvider(TwoFactorProvider):
    """Backup verification codes provider.

    Example:
        ```python
        backup = BackupCodesProvider(store, random_source=SystemRandomSource())

        codes = await backup.generate("user-123")
        print(f"Save these codes: {codes}")

        # Later, when the user lost their phone
        if await backup.verify("user-123", submitted):
            remaining = await backup.remaining_count("user-123")
        ```
    """

    priority = 80
    capabilities = frozenset({Capability.SINGLE_USE_CODE})

    def __init__(
        self,
        store: IAttributeStore,
        *,
        random_source: IRandomSource,
        hasher: CodeHasher | None = None,
        config: BackupCodesConfig | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self.store = store
        self.random_source = random_source
        self.config = config or BackupCodesConfig()
        self.hasher = hasher or CodeHasher(rounds=self.config.bcrypt_rounds)
        self.max_attempts = max_attempts

    @property
    def label(self) -> str:
        return "Backup Verification Codes (Single Use)"

    @property
    def description(self) -> str:
        return "Single-use codes for when your other methods are unavailable."

    async def generate(
        self,
        user_id: str,
        count: int | None = None,
        mode: GenerationMode = GenerationMode.REPLACE,
    ) -> list[str]:
        """Generate backup codes for a user.

        The plaintext codes are returned once and never stored.

        Args:
            user_id: User identifier.
            count: Number of codes (default from config, 10).
            mode: REPLACE discards unused codes, APPEND keeps them.

        Returns:
            List of plaintext codes.

        Raises:
            ValueError: If count is less than 1.
        """
        if count is None:
            count = self.config.count
        if count < 1:
            raise ValueError("Backup code count must be positive")
        codes: list[str] = []
        while len(codes) < count:
            code = random_numeric_code(self.random_source, self.config.code_length)
            if code not in codes:
                codes.append(code)

        hashes = [self.hasher.hash(code) for code in codes]

        def mutate(current: list[str] | None) -> list[str]:
            if mode is GenerationMode.APPEND and current:
                return [*current, *hashes]
            return list(hashes)

        await update_attribute(
            self.store,
            user_id,
            BACKUP_CODES_ATTRIBUTE,
            mutate,
            max_attempts=self.max_attempts,
        )
        logger.info(
            "Generated %d backup codes for user %s (%s)", count, user_id, mode.value
        )
        return codes

    async def _hashes(self, user_id: str) -> list[str]:
        return list(await self.store.get(user_id, BACKUP_CODES_ATTRIBUTE) or [])

    async def remaining_count(self, user_id: str) -> int:
        return len(await self._hashes(user_id))

    async def revoke(self, user_id: str) -> None:
        """Delete every stored code for a user."""
        if await self.store.delete(user_id, BACKUP_CODES_ATTRIBUTE):
            logger.info("Backup codes revoked for user %s", user_id)

    async def delete_user_data(self, user_id: str) -> None:
        await self.revoke(user_id)

    async def is_available_for_user(self, user_id: str) -> bool:
        return await self.remaining_count(user_id) > 0

    async def render_challenge(self, user_id: str) -> ChallengePayload:
        return ChallengePayload(
            provider_key=self.key,
            prompt="Enter a backup verification code.",
            data={"code_length": self.config.code_length},
        )

    def _find_match(self, stored: list[Any], code: str) -> str | None:
        match: str | None = None
        for hashed in stored:
            # Every hash is checked so timing does not reveal the position.
            if self.hasher.verify(str(hashed), code) and match is None:
                match = str(hashed)
        return match

    async def verify(self, user_id: str, proof: Proof) -> bool:
        """Accept a code once and remove it.

        A concurrent write re-reads the stored hashes and checks again, so
        two submissions of the same code can never both succeed.

        Raises:
            StorageConflictError: If every compare-and-set attempt lost.
        """
        code = proof_as_text(proof).replace("-", "")
        if not code:
            return False

        for _ in range(self.max_attempts):
            stored = await self.store.get(user_id, BACKUP_CODES_ATTRIBUTE)
            if not stored:
                return False
            match = self._find_match(stored, code)
            if match is None:
                return False

            remaining = list(stored)
            remaining.remove(match)
            if await self.store.compare_and_set(
                user_id, BACKUP_CODES_ATTRIBUTE, stored, remaining
            ):
                logger.info(
                    "Backup code used by user %s, %d remaining",
                    user_id,
                    len(remaining),
                )
                return True
        raise StorageConflictError(
            f"Could not consume backup code after {self.max_attempts} attempts"
        )

    async def option_details(self, user_id: str) -> str:
        stored = await self.store.get(user_id, BACKUP_CODES_ATTRIBUTE)
        if stored is None:
            return "You have not generated any backup codes."
        count = len(stored)
        noun = "code" if count == 1 else "codes"
        return f"You have {count} unused {noun} remaining."

    async def management_actions(self, user_id: str) -> tuple[str, ...]:
        return ("Generate Verification Codes",)


__all__: list[str] = [
    "BACKUP_CODES_ATTRIBUTE",
    "GenerationMode",
    "BackupCodesProvider",
]
