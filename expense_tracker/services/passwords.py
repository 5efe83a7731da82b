"""Password hashing and the password complexity policy."""

import re
from dataclasses import dataclass, field

import bcrypt

MIN_PASSWORD_LENGTH = 12

# bcrypt only ever reads the first 72 bytes of its input.
_BCRYPT_MAX_BYTES = 72

_UPPERCASE = re.compile(r"[A-Z]")
_LOWERCASE = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")
_SPECIAL = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")


@dataclass
class PasswordValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def _to_bcrypt_bytes(password: str) -> bytes:
    return password.encode()[:_BCRYPT_MAX_BYTES]


class PasswordService:
    def __init__(self, rounds: int = 12):
        self.rounds = rounds

    def encode_password(self, password: str) -> str:
        """Hash a plaintext password with a fresh salt."""
        if password is None:
            raise ValueError("password must not be None")
        return bcrypt.hashpw(
            _to_bcrypt_bytes(password), bcrypt.gensalt(rounds=self.rounds)
        ).decode()

    def match_password(self, password: str | None, password_hash: str | None) -> bool:
        """Check a plaintext password against a stored hash.

        Users without a password yet (``password_hash is None``) never match.
        """
        if not password or password_hash is None:
            return False
        try:
            return bcrypt.checkpw(_to_bcrypt_bytes(password), password_hash.encode())
        except ValueError:
            # Stored value is not a bcrypt hash.
            return False

    def validate_password_complexity(self, password: str | None) -> PasswordValidation:
        """Report every rule the password breaks, not just the first one."""
        if not password:
            return PasswordValidation(False, ["Password cannot be empty"])

        errors = []
        if len(password) < MIN_PASSWORD_LENGTH:
            errors.append(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
            )
        if not _UPPERCASE.search(password):
            errors.append("Password must contain at least one uppercase letter")
        if not _LOWERCASE.search(password):
            errors.append("Password must contain at least one lowercase letter")
        if not _DIGIT.search(password):
            errors.append("Password must contain at least one digit")
        if not _SPECIAL.search(password):
            errors.append(
                "Password must contain at least one special character (!@#$%^&*...)"
            )
        return PasswordValidation(not errors, errors)
