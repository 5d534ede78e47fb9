"""
auth/errors.py -- Typed domain errors raised by the repository, token service,
and authorization gate.

Each class carries a stable machine-readable `code`. The HTTP boundary
(api/main.py) maps exception *classes* to status codes through an explicit
table -- never by inspecting message text, so a username that happens to
contain "not found" or "already exists" cannot misroute a response.

`public_message` is what the caller sees. For most kinds the instance message
is already safe (it names only the username the caller supplied). Kinds whose
detail could leak information override it with a fixed string:
  AuthenticationFailed -- never reveals whether the username exists.
  Forbidden            -- never reveals actual vs. required role.

Layer rule: no imports from api/.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for every domain error in the auth package."""

    code = "auth_error"
    public_message: str | None = None

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.public_message or self.code)

    @property
    def safe_message(self) -> str:
        return self.public_message or str(self)


class ValidationError(AuthError):
    """Malformed or missing input."""

    code = "validation_error"


class SetupComplete(ValidationError):
    """Bootstrap requested after the first user already exists."""

    code = "setup_complete"

    def __init__(self) -> None:
        super().__init__("Bootstrap only available when no users exist.")


class InvalidRole(ValidationError):
    """A role value outside the closed Role enumeration."""

    code = "invalid_role"

    def __init__(self, value: object) -> None:
        super().__init__(f"Invalid role {value!r}. Expected one of: admin, gm, player.")


class DuplicateUser(AuthError):
    code = "duplicate_user"

    def __init__(self, username: str) -> None:
        super().__init__(f"User '{username}' already exists")


class UserNotFound(AuthError):
    code = "not_found"

    def __init__(self, username: str) -> None:
        super().__init__(f"User '{username}' not found")


class AuthenticationFailed(AuthError):
    """Bad login. The message is identical for every cause."""

    code = "bad_credentials"
    public_message = "Invalid username or password."

    def __init__(self) -> None:
        super().__init__(self.public_message)


class MissingToken(AuthError):
    code = "missing_token"
    public_message = "Missing bearer token."


class InvalidToken(AuthError):
    """Bad signature, malformed payload, or expired token.

    The instance message records the reason for server-side logs; callers
    only ever see public_message.
    """

    code = "invalid_token"
    public_message = "Invalid token."


class Forbidden(AuthError):
    code = "forbidden"
    public_message = "Forbidden."


class NotAuthorized(Forbidden):
    """Acting user lacks the live authority for a privileged operation."""

    code = "not_authorized"
