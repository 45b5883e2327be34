# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for password hashing."""

import pytest

from src.domains.auth.password import (
    PasswordHasher,
    hash_password,
    password_problems,
    password_strength,
    verify_password,
)


@pytest.fixture
def hasher() -> PasswordHasher:
    """Low cost hasher to keep the suite fast."""
    return PasswordHasher(rounds=4)


class TestPasswordHasher:
    """Tests for PasswordHasher class."""

    def test_hash_returns_salted_bcrypt_hash(self, hasher: PasswordHasher) -> None:
        first = hasher.hash("Str0ng!pass")
        second = hasher.hash("Str0ng!pass")

        assert first.startswith("$2b$04$")
        assert len(first) == 60
        assert first != second

    def test_verify_round_trip(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("Str0ng!pass")

        assert hasher.verify("Str0ng!pass", hashed) is True
        assert hasher.verify("wrong", hashed) is False

    def test_verify_rejects_empty_inputs(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("Str0ng!pass")

        assert hasher.verify("", hashed) is False
        assert hasher.verify("Str0ng!pass", "") is False

    def test_verify_malformed_hash_returns_false(self, hasher: PasswordHasher) -> None:
        assert hasher.verify("Str0ng!pass", "not-a-bcrypt-hash") is False

    def test_hash_empty_password_raises_error(self, hasher: PasswordHasher) -> None:
        with pytest.raises(ValueError, match="empty"):
            hasher.hash("")

    def test_hash_rejects_passwords_over_72_bytes(self, hasher: PasswordHasher) -> None:
        with pytest.raises(ValueError, match="too long"):
            hasher.hash("é" * 40)

    def test_unicode_password(self, hasher: PasswordHasher) -> None:
        hashed = hasher.hash("pässwörd✓")

        assert hasher.verify("pässwörd✓", hashed) is True


class TestModuleFunctions:
    """Tests for the default hasher helpers."""

    def test_hash_and_verify(self) -> None:
        hashed = hash_password("Str0ng!pass")

        assert verify_password("Str0ng!pass", hashed) is True
        assert verify_password("other", hashed) is False


class TestPasswordPolicy:
    """Tests for password_strength and password_problems."""

    @pytest.mark.parametrize(
        ("password", "score", "label"),
        [
            ("", 0, "weak"),
            ("password", 2, "weak"),
            ("Aa1!", 4, "medium"),
            ("Password", 3, "medium"),
            ("Password123", 4, "medium"),
            ("MyP@ssw0rd", 5, "strong"),
        ],
    )
    def test_strength_score(self, password: str, score: int, label: str) -> None:
        strength = password_strength(password)

        assert strength.score == score
        assert strength.label == label

    def test_minimum_length_is_eight(self) -> None:
        assert password_strength("abcdefgh").has_min_length is True
        assert password_strength("abcdefg").has_min_length is False

    def test_problems_name_each_missing_requirement(self) -> None:
        assert password_problems("NEWP@SSW0RD") == ["a lowercase letter"]
        assert password_problems("NewP@1") == ["at least 8 characters"]
        assert password_problems("s3cure-Passw0rd") == []
