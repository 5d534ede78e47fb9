"""
api/routes/users.py -- User and role management REST endpoints.

Routes:
  GET    /users                          -- list users (admin)
  GET    /users/{username}               -- user details (self or admin)
  POST   /users                          -- create user (admin)
  DELETE /users/{username}               -- delete user (admin)
  GET    /users/{username}/roles         -- user's roles (self or admin)
  POST   /users/{username}/roles         -- add roles (admin, live re-check)
  PUT    /users/{username}/roles         -- replace roles (admin)
  DELETE /users/{username}/roles/{role}  -- revoke one role (admin)
  PATCH  /users/{username}/password      -- change password (self or admin)

Handlers raise domain errors from auth/errors.py; api/main.py maps them to
status codes. Handlers that hash a password are async; they hand bcrypt to a
worker thread via AuthService and the store call after it via
asyncio.to_thread. The rest are plain def and run in FastAPI's threadpool.

Role assignment (POST .../roles) passes through AuthService so the caller's
admin role is re-read from the store, not trusted from the token. The other
admin routes rely on the gate's token check alone.
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Request

from api.models import (
    MessageResponse,
    PasswordChange,
    RolesAssign,
    RolesEnvelope,
    RolesReplace,
    UserCreate,
    UserEnvelope,
    UserResponse,
    UsersEnvelope,
)
from auth.dependencies import authenticate, require_self_or_admin
from auth.errors import UserNotFound
from auth.models import AuthContext, Role, User, parse_role
from auth.service import AuthService
from auth.store import UserRepository

logger = logging.getLogger("snapp.api.users")

# Auth policy:
# - GET    /users:                          admin (gate)
# - GET    /users/{username}:               any token + self-or-admin in handler
# - POST   /users:                          admin (gate)
# - DELETE /users/{username}:               admin (gate)
# - GET    /users/{username}/roles:         any token + self-or-admin in handler
# - POST   /users/{username}/roles:         admin (gate) + live admin check in AuthService
# - PUT    /users/{username}/roles:         admin (gate)
# - DELETE /users/{username}/roles/{role}:  admin (gate)
# - PATCH  /users/{username}/password:      any token + self-or-admin in handler
router = APIRouter()

require_admin = authenticate(Role.admin)
require_any = authenticate()


def _store(request: Request) -> UserRepository:
    return request.app.state.user_store


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _get_or_404(store: UserRepository, username: str) -> User:
    user = store.get(username)
    if user is None:
        raise UserNotFound(username)
    return user


def _envelope(user: User) -> UserEnvelope:
    return UserEnvelope(user=UserResponse.from_user(user))


@router.get("/users", response_model=UsersEnvelope)
def list_users(request: Request, auth: AuthContext = Depends(require_admin)) -> UsersEnvelope:
    """List all users. Admin only."""
    users = _store(request).list()
    return UsersEnvelope(users=[UserResponse.from_user(u) for u in users])


@router.get("/users/{username}", response_model=UserEnvelope)
def get_user(request: Request, username: str, auth: AuthContext = Depends(require_any)) -> UserEnvelope:
    """Return one user. The user themself or an admin."""
    require_self_or_admin(auth, username)
    return _envelope(_get_or_404(_store(request), username))


@router.post("/users", response_model=UserEnvelope, status_code=201)
async def create_user(request: Request, body: UserCreate, auth: AuthContext = Depends(require_admin)) -> UserEnvelope:
    """Create a user with a password and optional roles. Admin only.

    400 duplicate_user if the username is taken; the store is left unchanged.
    """
    hashed = await _service(request).hash_password(body.password)
    user = await asyncio.to_thread(_store(request).create, body.username, body.roles, hashed)
    logger.info("%r created user %r", auth.user_id, user.username)
    return _envelope(user)


@router.delete("/users/{username}", response_model=MessageResponse)
def delete_user(request: Request, username: str, auth: AuthContext = Depends(require_admin)) -> MessageResponse:
    """Delete a user permanently. Admin only.

    Outstanding tokens for the deleted user stay cryptographically valid until
    they expire, but every lookup and login for the username now fails.
    """
    _store(request).remove(username)
    logger.info("%r deleted user %r", auth.user_id, username)
    return MessageResponse(message=f"User '{username}' deleted")


@router.get("/users/{username}/roles", response_model=RolesEnvelope)
def get_roles(request: Request, username: str, auth: AuthContext = Depends(require_any)) -> RolesEnvelope:
    """Return the user's current roles. The user themself or an admin."""
    require_self_or_admin(auth, username)
    return RolesEnvelope(roles=list(_get_or_404(_store(request), username).roles))


@router.post("/users/{username}/roles", response_model=UserEnvelope)
def assign_roles(
    request: Request,
    username: str,
    body: RolesAssign,
    auth: AuthContext = Depends(require_admin),
) -> UserEnvelope:
    """Add roles to a user (union). Admin only, checked against live roles."""
    user = _service(request).assign_roles_as_admin(auth.user_id, username, body.roles)
    return _envelope(user)


@router.put("/users/{username}/roles", response_model=UserEnvelope)
def replace_roles(
    request: Request,
    username: str,
    body: RolesReplace,
    auth: AuthContext = Depends(require_admin),
) -> UserEnvelope:
    """Replace a user's roles with exactly the given set. Admin only."""
    user = _store(request).set_roles(username, body.roles)
    logger.info("%r set roles of %r to %s", auth.user_id, username, [r.value for r in user.roles])
    return _envelope(user)


@router.delete("/users/{username}/roles/{role}", response_model=UserEnvelope)
def revoke_role(
    request: Request,
    username: str,
    role: str,
    auth: AuthContext = Depends(require_admin),
) -> UserEnvelope:
    """Revoke one role. Admin only. Revoking a role the user lacks is a no-op.

    role is parsed here (not typed as Role in the signature) so an unknown
    value surfaces as 400 invalid_role rather than a generic validation error.
    """
    parsed = parse_role(role)
    user = _store(request).revoke_role(username, parsed)
    logger.info("%r revoked role %r from %r", auth.user_id, parsed.value, username)
    return _envelope(user)


@router.patch("/users/{username}/password", response_model=UserEnvelope)
async def change_password(
    request: Request,
    username: str,
    body: PasswordChange,
    auth: AuthContext = Depends(require_any),
) -> UserEnvelope:
    """Replace a user's password. The user themself or an admin."""
    require_self_or_admin(auth, username)
    hashed = await _service(request).hash_password(body.password)
    user = await asyncio.to_thread(_store(request).update_password, username, hashed)
    logger.info("%r changed the password of %r", auth.user_id, username)
    return _envelope(user)
