"""Authentication primitives: passwords, bearer tokens, login throttling."""

from certkeeper.auth.password import generate_password, hash_password, verify_password
from certkeeper.auth.tokens import (
    LoginRateLimiter,
    TokenBlacklist,
    create_token,
    decode_token,
)

__all__ = [
    "LoginRateLimiter",
    "TokenBlacklist",
    "create_token",
    "decode_token",
    "generate_password",
    "hash_password",
    "verify_password",
]
