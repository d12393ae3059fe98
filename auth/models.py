"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores and the service do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """Represents a registered identity.

    username and email are both unique in the directory. hashed_password is
    a bcrypt hash and never leaves the server -- the API layer maps User to a
    response model that omits it.
    """

    username: str
    email: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class FieldError:
    """A user-correctable failure tied to one named input field."""

    field: str
    message: str


@dataclass
class UniqueViolation:
    """Returned by UserStore.create_user() when a unique column already holds the value.

    field is "username" or "email" when the store can tell which constraint
    fired, otherwise "username".
    """

    field: str = "username"


@dataclass
class Session:
    """Server-side session state. The client only ever holds session_id."""

    session_id: str
    expires_at: float
    user_id: int | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None


@dataclass
class RequestContext:
    """Per-request state handed explicitly to every AuthService call.

    session is None once the session has been destroyed (logout). The HTTP
    layer reads it after the call to decide whether to renew or clear the
    session cookie.
    """

    session: Session | None


@dataclass
class AuthResult:
    """Outcome of register / login / change_password: a user or field errors."""

    user: User | None = None
    errors: list[FieldError] | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.user is not None and not self.errors

    @classmethod
    def failure(cls, field_name: str, message: str) -> AuthResult:
        return cls(errors=[FieldError(field=field_name, message=message)])
