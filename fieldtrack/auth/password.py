"""
FieldTrack - Password Hashing Utilities

bcrypt hashing for identity secrets. Hashes produced by the previous
deployment ($2a$ prefix, cost 10) verify unchanged and
are upgraded on the next successful login.
"""

import secrets

import bcrypt


# Work factor for bcrypt (2^12 = 4096 iterations)
BCRYPT_WORK_FACTOR = 12

MIN_PASSWORD_LENGTH = 6


def hash_password(password: str, rounds: int = BCRYPT_WORK_FACTOR) -> str:
    """
    Hash a password using bcrypt.

    Example:
        >>> hash_password("Inspector2024").startswith("$2b$")
        True
    """
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Constant-time check of a password against a bcrypt hash."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except (ValueError, TypeError):
        # Invalid hash format
        return False


def needs_rehash(hashed_password: str, target_work_factor: int = BCRYPT_WORK_FACTOR) -> bool:
    """
    Check if a stored hash was produced with a lower work factor.

    bcrypt hash format: $2b$XX$... where XX is the cost in decimal.
    """
    try:
        _, work_factor_str, _ = hashed_password.split("$")[1:4]
        return int(work_factor_str) < target_work_factor
    except (ValueError, IndexError):
        return True


def generate_reset_token() -> str:
    """32 random bytes, hex encoded, for the password recovery link."""
    return secrets.token_hex(32)
