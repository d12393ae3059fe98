"""
auth/passwords.py -- Password hashing and verification.

Passwords: bcrypt used directly (no passlib wrapper). Bcrypt is the right
choice for low-entropy secrets because its cost factor makes brute force
expensive, and checkpw() compares digests in constant time.

bcrypt only looks at the first 72 bytes of its input. Older releases drop the
rest silently, which would let two passwords sharing a 72-byte prefix match
each other. Longer passwords are therefore refused: validation reports them
as a field error, hash_password() raises, and verify_password() never
matches them.

The _DUMMY_HASH constant enables timing equalization: when a login names a
user that does not exist, burn_verify() still pays for one bcrypt check, so
response time does not reveal whether the account exists.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72


def password_too_long(plain: str) -> bool:
    return len(plain.encode("utf-8")) > MAX_PASSWORD_BYTES


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Raises ValueError for passwords over MAX_PASSWORD_BYTES once encoded.
    """
    if password_too_long(plain):
        raise ValueError(f"password exceeds {MAX_PASSWORD_BYTES} bytes")
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Any malformed or empty stored hash counts as a mismatch, and so does a
    plaintext too long to have been hashed; this function never raises.
    """
    if not hashed or password_too_long(plain):
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first failed lookup is not measurably
# slower than later ones.
_DUMMY_HASH: str = hash_password("threadline_timing_dummy")


def burn_verify(plain: str) -> None:
    """Run one bcrypt check against the dummy hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)
