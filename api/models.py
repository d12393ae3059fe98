"""
API request and response models for the Threadline auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Field names on the wire are camelCase (usernameOrEmail, newPassword,
createdAt) because the browser client and the FieldError.field values use
that spelling. Python attributes stay snake_case via alias_generator.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import AuthResult, FieldError, User

_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True)

# ---------------------------------------------------------------------------
# Request models
#
# Only transport-level bounds live here (max_length keeps bcrypt input and
# index keys sane). Business rules -- "too short", "@ in username" -- are
# checked by auth.validation so they come back as field errors, not 422s.
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = _WIRE

    username: str = Field(max_length=255)
    email: str = Field(max_length=255)
    password: str = Field(max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = _WIRE

    username_or_email: str = Field(max_length=255)
    password: str = Field(max_length=255)


class ForgotPasswordRequest(BaseModel):
    model_config = _WIRE

    email: str = Field(max_length=255)


class ChangePasswordRequest(BaseModel):
    """Request body for POST /api/v1/auth/change-password."""

    model_config = _WIRE

    token: str = Field(max_length=255)
    new_password: str = Field(max_length=255)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. hashed_password is never part of it."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    username: str
    email: str
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class FieldErrorResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str

    @classmethod
    def from_error(cls, error: FieldError) -> "FieldErrorResponse":
        return cls(field=error.field, message=error.message)


class AuthResponse(BaseModel):
    """Envelope for register / login / change-password: either user or errors is set."""

    model_config = ConfigDict(frozen=True)

    user: Optional[UserResponse] = None
    errors: Optional[list[FieldErrorResponse]] = None

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        if result.errors:
            return cls(errors=[FieldErrorResponse.from_error(e) for e in result.errors])
        return cls(user=UserResponse.from_user(result.user))


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: Optional[UserResponse] = None


class OkResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
