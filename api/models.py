"""
API request and response models for Snapp Auth REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Role fields are typed as the Role enum, so an unknown role in a request body
fails validation at the boundary (400) before any handler runs. No response
model has a password hash field.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from auth.models import Role, User
from auth.tokens import MAX_PASSWORD_BYTES


def _check_password_bytes(value: str) -> str:
    if len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8")
    return value


_Username = Annotated[str, Field(min_length=1, max_length=255)]
# New passwords are capped in bytes, the unit bcrypt counts in.
_Password = Annotated[str, Field(min_length=1), AfterValidator(_check_password_bytes)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """No upper bound on password: an over-long one is just a wrong password."""

    username: _Username
    password: str = Field(min_length=1)


class UserCreate(BaseModel):
    """Request body for POST /users. roles defaults to an empty set."""

    username: _Username
    password: _Password
    roles: list[Role] = Field(default_factory=list)


class BootstrapRequest(BaseModel):
    """Request body for POST /bootstrap/admin. Every field has a default."""

    username: _Username = "admin"
    password: _Password = "admin123"
    roles: list[Role] = Field(default_factory=lambda: [Role.admin])


class RolesAssign(BaseModel):
    """Request body for POST /users/{username}/roles (additive, non-empty)."""

    roles: list[Role] = Field(min_length=1)


class RolesReplace(BaseModel):
    """Request body for PUT /users/{username}/roles (authoritative, may be empty)."""

    roles: list[Role]


class PasswordChange(BaseModel):
    password: _Password


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    username: str
    roles: list[Role]

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, username=user.username, roles=list(user.roles))


class UserEnvelope(BaseModel):
    user: UserResponse


class UsersEnvelope(BaseModel):
    users: list[UserResponse]


class RolesEnvelope(BaseModel):
    roles: list[Role]


class LoginResponse(BaseModel):
    user: UserResponse
    token: str


class MessageResponse(BaseModel):
    message: str


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
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
