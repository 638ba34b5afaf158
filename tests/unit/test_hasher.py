"""Tests for backup code hashing."""

from __future__ import annotations

from two_factor.hasher import CodeHasher


class TestCodeHasher:
    def test_hash_and_verify(self) -> None:
        hasher = CodeHasher(rounds=4)
        hashed = hasher.hash("12345678")

        assert hashed.startswith("$2b$04$")
        assert hasher.verify(hashed, "12345678")
        assert not hasher.verify(hashed, "87654321")

    def test_salted(self) -> None:
        hasher = CodeHasher(rounds=4)

        assert hasher.hash("12345678") != hasher.hash("12345678")

    def test_malformed_hash_never_matches(self) -> None:
        assert not CodeHasher(rounds=4).verify("not-a-hash", "12345678")
