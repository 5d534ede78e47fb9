"""
auth/dependencies.py -- Authorization gate as FastAPI Depends() helpers.

authenticate(required_role) builds a per-request pipeline of four stages.
Each stage can short-circuit with a domain error, which api/main.py maps to
a status code:

  1. Extract    -- "Authorization: Bearer <token>"; scheme matched
                   case-insensitively. Missing/malformed -> MissingToken (401).
  2. Verify     -- AuthService.verify_token(). Failure -> InvalidToken (401).
  3. Bind       -- AuthContext(user_id, roles) is stored on request.state.auth
                   and returned to the handler.
  4. Role-check -- required_role absent from the bound roles -> Forbidden (403).
                   There is no implicit admin bypass.

require_self_or_admin() is the handler-local companion for routes whose
required identity depends on the path (e.g. /users/{username}). Both checks
use only the identity bound in stage 3, never anything the client sends in
the body or query.

Verification is stateless: the roles checked here are the ones frozen into
the token at login. A freshly granted role needs a fresh login; a revoked
role stays effective until the token expires.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.errors import Forbidden, MissingToken
from auth.models import AuthContext, Role
from auth.service import AuthService


def bearer_token_from_header(header_value: str | None) -> str | None:
    """Return the token from an Authorization header value, or None.

    Accepts exactly two space-separated parts with a case-insensitive
    "bearer" scheme.
    """
    if not header_value:
        return None
    parts = header_value.split(" ")
    if len(parts) != 2:
        return None
    scheme, token = parts
    if scheme.lower() != "bearer" or not token:
        return None
    return token


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def authenticate(required_role: Role | None = None) -> Callable[[Request], AuthContext]:
    """Return a dependency that authenticates the request and checks a role.

    Use as a FastAPI dependency:
        @router.get("/gm-only")
        def route(auth: AuthContext = Depends(authenticate(Role.gm))): ...
    """

    def dependency(request: Request) -> AuthContext:
        token = bearer_token_from_header(request.headers.get("Authorization"))
        if token is None:
            raise MissingToken()

        payload = get_auth_service(request).verify_token(token)

        auth = AuthContext(user_id=payload.subject, roles=payload.roles)
        request.state.auth = auth

        if required_role is not None and required_role not in auth.roles:
            raise Forbidden(f"{auth.user_id!r} lacks role {required_role.value!r}")
        return auth

    return dependency


def require_self_or_admin(auth: AuthContext, username: str) -> None:
    """Raise Forbidden unless the bound identity is username or holds admin."""
    if auth.user_id != username and not auth.is_admin:
        raise Forbidden(f"{auth.user_id!r} may not access {username!r}")
