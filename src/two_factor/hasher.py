"""Backup code hashing.

Backup codes are stored only as salted bcrypt hashes, the same way account
passwords are stored.
"""

from __future__ import annotations

from typing import cast

import bcrypt


class CodeHasher:
    """bcrypt hasher for single-use codes.

    Example:
        ```python
        hasher = CodeHasher(rounds=12)
        hashed = hasher.hash("12345678")
        assert hasher.verify(hashed, "12345678")
        ```
    """

    def __init__(self, *, rounds: int = 12) -> None:
        """Initialize the hasher.

        Args:
            rounds: bcrypt cost factor (default 12).
        """
        self.rounds = rounds

    def hash(self, code: str) -> str:
        """Hash a code with a fresh salt."""
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(code.encode(), salt).decode()

    def verify(self, hashed_code: str, code: str) -> bool:
        """Verify a code against a stored hash.

        Returns:
            True if the code matches. Malformed hashes never match.
        """
        try:
            return cast("bool", bcrypt.checkpw(code.encode(), hashed_code.encode()))
        except ValueError:
            # Invalid hash format
            return False


__all__: list[str] = ["CodeHasher"]
