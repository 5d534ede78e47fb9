"""
auth/models.py -- Domain types for authentication entities.

Pattern: Data class (pure data container, minimal logic). Stores and routes
do the work; the only behavior here is parsing role values into the closed
Role enumeration, which every boundary must go through.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from auth.errors import InvalidRole


class Role(str, Enum):
    """Closed set of permission tiers. Anything else is rejected, never stored."""

    admin = "admin"
    gm = "gm"
    player = "player"


def parse_role(value: object) -> Role:
    """Return the Role for value or raise InvalidRole."""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        raise InvalidRole(value) from None


def normalize_roles(values: Iterable[object]) -> list[Role]:
    """Parse every value and drop duplicates, keeping first-seen order.

    Roles are semantically a set; the list form exists only so responses and
    token claims serialize deterministically.
    """
    result: list[Role] = []
    for value in values:
        role = parse_role(value)
        if role not in result:
            result.append(role)
    return result


@dataclass
class User:
    """An identity record.

    username is both the lookup key and the token subject, so `id` is simply
    an alias for it. hashed_password is None only for identities without a
    local password (reserved for future SSO); login for those always fails.
    """

    username: str
    roles: list[Role] = field(default_factory=list)
    hashed_password: str | None = None
    created_at: str | None = None

    @property
    def id(self) -> str:
        return self.username

    def has_role(self, role: Role) -> bool:
        return role in self.roles


@dataclass(frozen=True)
class TokenPayload:
    """Verified claims of an access token.

    A snapshot taken at login, not a live view: roles revoked after issuance
    stay visible here until the token expires.
    """

    subject: str
    roles: tuple[Role, ...]
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True)
class AuthContext:
    """Identity bound to a request by the authorization gate."""

    user_id: str
    roles: tuple[Role, ...]

    @property
    def is_admin(self) -> bool:
        return Role.admin in self.roles
