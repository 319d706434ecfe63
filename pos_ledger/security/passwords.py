from __future__ import annotations

from pwdlib import PasswordHash

MIN_PASSWORD_LENGTH = 8

_hasher = PasswordHash.recommended()


def hash_password(raw_password: str) -> str:
    if len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    return _hasher.hash(raw_password)


def check_password(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Returns (valid, replacement_hash); the replacement is set when the stored hash is outdated."""
    return _hasher.verify_and_update(raw_password, hashed_password)
