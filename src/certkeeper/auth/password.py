"""Password hashing and generation of initial user passwords."""

from __future__ import annotations

import secrets
import string

from werkzeug.security import check_password_hash, generate_password_hash

# Each generated password draws at least one character from every class
_CLASSES = (
    string.ascii_uppercase,
    string.ascii_lowercase,
    string.digits,
    "!@#$%^&*-_+=",
)
_ALPHABET = "".join(_CLASSES)

_rng = secrets.SystemRandom()


def generate_password(length: int = 20) -> str:
    """Return a random password of *length* characters for a new account."""
    if length < len(_CLASSES):
        msg = f"Password length must be at least {len(_CLASSES)}"
        raise ValueError(msg)
    chars = [secrets.choice(cls) for cls in _CLASSES]
    chars += [secrets.choice(_ALPHABET) for _ in range(length - len(chars))]
    _rng.shuffle(chars)
    return "".join(chars)


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)
