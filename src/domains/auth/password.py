# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Staff password hashing and the password policy.

Hashes are bcrypt with the salt embedded, stored in users.password_hash.
The policy is applied when an invitee chooses a password: at least eight
characters with upper case, lower case, a digit and a symbol.

Example:
    >>> hasher = PasswordHasher()
    >>> hasher.verify("Str0ng!pass", hasher.hash("Str0ng!pass"))
    True
    >>> password_problems("password")
    ['an uppercase letter', 'a number', 'a special character']
"""

import logging
from dataclasses import dataclass

import bcrypt

logger = logging.getLogger(__name__)

# bcrypt ignores everything after 72 bytes, so longer input is refused.
MAX_PASSWORD_BYTES = 72
MIN_PASSWORD_LENGTH = 8


@dataclass(frozen=True)
class PasswordStrength:
    has_min_length: bool
    has_uppercase: bool
    has_lowercase: bool
    has_number: bool
    has_special_char: bool

    @property
    def score(self) -> int:
        return sum(
            (
                self.has_min_length,
                self.has_uppercase,
                self.has_lowercase,
                self.has_number,
                self.has_special_char,
            )
        )

    @property
    def label(self) -> str:
        if self.score == 5:
            return "strong"
        return "medium" if self.score >= 3 else "weak"


def password_strength(password: str) -> PasswordStrength:
    return PasswordStrength(
        has_min_length=len(password) >= MIN_PASSWORD_LENGTH,
        has_uppercase=any(c.isupper() for c in password),
        has_lowercase=any(c.islower() for c in password),
        has_number=any(c.isdigit() for c in password),
        has_special_char=any(not c.isalnum() and not c.isspace() for c in password),
    )


def password_problems(password: str) -> list[str]:
    """What the password still lacks, phrased for "Password must contain ..."."""
    strength = password_strength(password)
    missing = []
    if not strength.has_min_length:
        missing.append(f"at least {MIN_PASSWORD_LENGTH} characters")
    if not strength.has_uppercase:
        missing.append("an uppercase letter")
    if not strength.has_lowercase:
        missing.append("a lowercase letter")
    if not strength.has_number:
        missing.append("a number")
    if not strength.has_special_char:
        missing.append("a special character")
    return missing


class PasswordHasher:
    """bcrypt hashing. ``rounds`` is lowered only in tests."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    def hash(self, password: str) -> str:
        """Return the bcrypt hash of ``password``.

        Raises:
            ValueError: If the password is empty or over 72 bytes of UTF-8.
        """
        if not password:
            raise ValueError("Password cannot be empty")
        raw = password.encode("utf-8")
        if len(raw) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password is too long (max {MAX_PASSWORD_BYTES} bytes)")
        return bcrypt.hashpw(raw, bcrypt.gensalt(rounds=self._rounds)).decode("ascii")

    def verify(self, password: str, password_hash: str) -> bool:
        """False for a wrong password, empty input or a corrupt stored hash."""
        if not password or not password_hash:
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            logger.warning("Stored password hash is not a valid bcrypt hash")
            return False


_default_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    return _default_hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return _default_hasher.verify(password, password_hash)
