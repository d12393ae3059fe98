"""
auth/validation.py -- Shape checks for registration and password-change input.

Every rule is evaluated independently and all failures are reported together,
so a client can highlight every bad field from a single round trip. The result
is None (not an empty list) when the input is acceptable; callers test
`if errors:` / `if errors is not None:` explicitly.
"""

from __future__ import annotations

from auth.models import FieldError
from auth.passwords import password_too_long

MIN_LENGTH = 3


def _password_errors(field: str, password: str) -> list[FieldError]:
    if len(password) < MIN_LENGTH:
        return [FieldError(field=field, message="password is too short")]
    if password_too_long(password):
        # bcrypt ignores everything past 72 bytes.
        return [FieldError(field=field, message="password is too long")]
    return []


def validate_register(username: str, email: str, password: str) -> list[FieldError] | None:
    """Return every violated registration rule, or None if all pass."""
    errors: list[FieldError] = []
    if len(username) < MIN_LENGTH:
        errors.append(FieldError(field="username", message="username is too short"))
    if "@" in username:
        # "@" is how login tells an email from a username.
        errors.append(FieldError(field="username", message="cannot include an @"))
    if "@" not in email:
        errors.append(FieldError(field="email", message="invalid email"))
    errors.extend(_password_errors("password", password))
    return errors or None


def validate_new_password(password: str) -> list[FieldError] | None:
    """Password rules for the change-password form, reported on newPassword."""
    return _password_errors("newPassword", password) or None
