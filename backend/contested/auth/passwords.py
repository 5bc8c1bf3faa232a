from __future__ import annotations

import bcrypt

MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes of input.
_MAX_BCRYPT_BYTES = 72


def validate_new_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def hash_password(password: str) -> str:
    raw = str(password).encode("utf-8")[:_MAX_BCRYPT_BYTES]
    return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str | None) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            str(password).encode("utf-8")[:_MAX_BCRYPT_BYTES],
            str(password_hash).encode("utf-8"),
        )
    except ValueError:
        # Malformed stored hash.
        return False
