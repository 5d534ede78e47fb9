"""
auth/service.py -- Credential & token service.

AuthService sits between the HTTP layer and the repository. It owns the
signing secret and the bcrypt cost, and it is the only place that turns a
password into a token.

Concurrency:
  bcrypt is deliberately slow. Every hash and compare runs through
  asyncio.to_thread so one login does not stall the event loop that accepts
  other requests. Repository calls made from the async methods go through
  to_thread too: SqlUserStore does blocking I/O and both stores take a
  threading.Lock. Token verification is pure and runs inline.

  login() re-reads the user after the (slow) password check so the token is
  issued with the role set current at that instant, and a user deleted while
  the check was running fails authentication rather than receiving a token.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from auth.errors import AuthenticationFailed, NotAuthorized
from auth.models import Role, TokenPayload, User, normalize_roles
from auth.store import UserRepository
from auth.tokens import (
    BCRYPT_ROUNDS,
    DUMMY_HASH,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)
from core.config import Settings

logger = logging.getLogger("snapp.auth")


@dataclass(frozen=True)
class LoginResult:
    user: User
    token: str


class AuthService:
    """Password login, token issue/verify, and privileged role changes.

    Usage:
        service = AuthService(store, secret_key=settings.secret_key)
        result = await service.login("alice", "alice123")
        payload = service.verify_token(result.token)
    """

    def __init__(
        self,
        store: UserRepository,
        secret_key: str,
        token_expire_seconds: int = 600,
        bcrypt_rounds: int = BCRYPT_ROUNDS,
    ) -> None:
        self.store = store
        self._secret_key = secret_key
        self.token_expire_seconds = token_expire_seconds
        self._bcrypt_rounds = bcrypt_rounds

    @classmethod
    def from_settings(cls, store: UserRepository, settings: Settings) -> AuthService:
        return cls(
            store,
            secret_key=settings.secret_key,
            token_expire_seconds=settings.token_expire_seconds,
            bcrypt_rounds=settings.bcrypt_rounds,
        )

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    async def hash_password(self, password: str) -> str:
        """Hash with the service's fixed cost factor, off the event loop."""
        return await asyncio.to_thread(hash_password, password, self._bcrypt_rounds)

    async def login(self, username: str, password: str) -> LoginResult:
        """Authenticate and issue a token.

        Raises AuthenticationFailed -- with the same message -- when the user
        does not exist, has no password hash, or the password is wrong. bcrypt
        runs in every case (against DUMMY_HASH when there is nothing real to
        compare) so response time does not reveal which case applied.
        """
        user = await asyncio.to_thread(self.store.get, username)
        hashed = user.hashed_password if user is not None else None
        matched = await asyncio.to_thread(verify_password, password, hashed or DUMMY_HASH)
        if user is None or hashed is None or not matched:
            logger.info("Login failed for %r", username)
            raise AuthenticationFailed()

        current = await asyncio.to_thread(self.store.get, username)
        if current is None:
            logger.info("Login failed for %r: user removed during check", username)
            raise AuthenticationFailed()

        token = create_access_token(
            current.id,
            current.roles,
            self._secret_key,
            self.token_expire_seconds,
        )
        logger.info("Login succeeded for %r", username)
        return LoginResult(user=current, token=token)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def verify_token(self, token: str) -> TokenPayload:
        """Verify signature, shape, and expiry. Raises InvalidToken.

        Stateless: the repository is not consulted, so the returned roles are
        the ones frozen in at login.
        """
        return decode_access_token(token, self._secret_key)

    # ------------------------------------------------------------------
    # Privileged operations
    # ------------------------------------------------------------------

    def assign_roles_as_admin(self, acting_username: str, target_username: str, roles: Iterable[Role]) -> User:
        """Add roles to target after checking the acting user's *live* roles.

        The acting user's authority is read from the repository, not from a
        token claim, so an admin demoted after login cannot keep granting
        roles with a still-valid token.
        """
        requested = normalize_roles(roles)
        acting = self.store.get(acting_username)
        if acting is None or not acting.has_role(Role.admin):
            logger.info("Role assignment by %r to %r refused: not an admin", acting_username, target_username)
            raise NotAuthorized("Only admins can assign roles")
        updated = self.store.assign_roles(target_username, requested)
        logger.info(
            "%r assigned roles %s to %r",
            acting_username,
            [r.value for r in requested],
            target_username,
        )
        return updated

    async def bootstrap_admin(self, username: str, password: str, roles: Iterable[Role]) -> User:
        """Create the very first user. Raises SetupComplete if any user exists."""
        parsed = normalize_roles(roles)
        hashed = await self.hash_password(password)
        user = await asyncio.to_thread(self.store.create_first, username, parsed, hashed)
        logger.info("Bootstrapped first user %r with roles %s", username, [r.value for r in parsed])
        return user
