"""Unit tests for auth/service.py -- AuthService.

The service's async methods are driven with asyncio.run(); there is no
event-loop fixture in this suite.

Covers:
- login success: token verifies to the user's id and current roles
- login failure: unknown user, wrong password, and no-hash user all raise the
  identical AuthenticationFailed message
- login after remove fails
- hash_password uses the service's configured cost
- assign_roles_as_admin checks the acting user's live roles
- verify_token is stateless (stale-token property)
- bootstrap_admin only on an empty store
- repository calls from the async methods run off the event-loop thread
"""

import asyncio
import threading

import pytest

from auth.errors import (
    AuthenticationFailed,
    InvalidToken,
    NotAuthorized,
    SetupComplete,
    UserNotFound,
    ValidationError,
)
from auth.models import Role
from auth.service import AuthService
from auth.store import InMemoryUserStore
from auth.tokens import hash_password
from conftest import TEST_ROUNDS, TEST_SECRET


def _login_error(service: AuthService, username: str, password: str) -> str:
    with pytest.raises(AuthenticationFailed) as exc_info:
        asyncio.run(service.login(username, password))
    return str(exc_info.value)


class TestLogin:
    def test_login_returns_user_and_verifiable_token(self, service: AuthService) -> None:
        service.store.set_roles("alice", [Role.gm])
        result = asyncio.run(service.login("alice", "alice123"))

        assert result.user.username == "alice"
        assert isinstance(result.token, str)

        payload = service.verify_token(result.token)
        assert payload.subject == "alice"
        assert payload.roles == (Role.gm,)

    def test_failure_messages_are_identical(self, service: AuthService) -> None:
        service.store.create("sso-only", [Role.player], None)

        wrong_password = _login_error(service, "alice", "wrongpassword")
        unknown_user = _login_error(service, "unknown", "password")
        no_hash = _login_error(service, "sso-only", "anything")

        assert wrong_password == unknown_user == no_hash == "Invalid username or password."

    def test_login_fails_after_remove(self, service: AuthService) -> None:
        service.store.remove("alice")
        _login_error(service, "alice", "alice123")

    def test_login_uses_new_password_after_change(self, service: AuthService) -> None:
        new_hash = asyncio.run(service.hash_password("n3w-password"))
        service.store.update_password("alice", new_hash)
        _login_error(service, "alice", "alice123")
        assert asyncio.run(service.login("alice", "n3w-password")).user.username == "alice"

    def test_token_expiry_window_is_configured(self, seeded_store: InMemoryUserStore) -> None:
        service = AuthService(seeded_store, secret_key=TEST_SECRET, token_expire_seconds=600, bcrypt_rounds=TEST_ROUNDS)
        token = asyncio.run(service.login("admin", "admin123")).token
        payload = service.verify_token(token)
        assert (payload.expires_at - payload.issued_at).total_seconds() == 600


class TestHashing:
    def test_hash_password_uses_configured_rounds(self, service: AuthService) -> None:
        hashed = asyncio.run(service.hash_password("secret"))
        assert hashed.startswith(f"$2b${TEST_ROUNDS:02d}$")


class TestAssignRolesAsAdmin:
    def test_admin_can_assign(self, service: AuthService) -> None:
        updated = service.assign_roles_as_admin("admin", "alice", [Role.gm])
        assert updated.roles == [Role.gm]
        assert service.store.get("alice").roles == [Role.gm]

    @pytest.mark.parametrize("roles", [[Role.gm], [Role.admin], [Role.player, Role.gm]])
    def test_non_admin_refused(self, service: AuthService, roles: list[Role]) -> None:
        service.store.create("bob", [Role.gm, Role.player])
        with pytest.raises(NotAuthorized, match="Only admins can assign roles"):
            service.assign_roles_as_admin("bob", "alice", roles)
        assert service.store.get("alice").roles == []

    def test_unknown_acting_user_refused(self, service: AuthService) -> None:
        with pytest.raises(NotAuthorized):
            service.assign_roles_as_admin("ghost", "alice", [Role.gm])

    def test_demoted_admin_refused(self, service: AuthService) -> None:
        """Authority is read live from the store, not from any token."""
        service.store.create("former", [Role.admin])
        service.store.revoke_role("former", Role.admin)
        with pytest.raises(NotAuthorized):
            service.assign_roles_as_admin("former", "alice", [Role.gm])

    def test_missing_target(self, service: AuthService) -> None:
        with pytest.raises(UserNotFound):
            service.assign_roles_as_admin("admin", "missing", [Role.gm])


class TestVerifyToken:
    def test_token_is_a_snapshot(self, service: AuthService) -> None:
        """Roles revoked after login stay in the unexpired token."""
        service.store.set_roles("alice", [Role.gm, Role.player])
        token = asyncio.run(service.login("alice", "alice123")).token
        service.store.revoke_role("alice", Role.gm)

        assert service.verify_token(token).roles == (Role.gm, Role.player)

    def test_token_survives_user_removal(self, service: AuthService) -> None:
        token = asyncio.run(service.login("alice", "alice123")).token
        service.store.remove("alice")
        assert service.verify_token(token).subject == "alice"

    def test_secret_rotation_invalidates_tokens(self, service: AuthService) -> None:
        token = asyncio.run(service.login("alice", "alice123")).token
        rotated = AuthService(service.store, secret_key="rotated-" + TEST_SECRET, bcrypt_rounds=TEST_ROUNDS)
        with pytest.raises(InvalidToken):
            rotated.verify_token(token)


class _ThreadRecordingStore(InMemoryUserStore):
    """Records the thread of every lookup and insert."""

    def __init__(self) -> None:
        super().__init__()
        self.threads: list[int] = []

    def get(self, username: str):
        self.threads.append(threading.get_ident())
        return super().get(username)

    def create_first(self, username, roles=(), hashed_password=None):
        self.threads.append(threading.get_ident())
        return super().create_first(username, roles, hashed_password)


class TestStoreCallsLeaveEventLoop:
    """asyncio.run drives the loop on this thread; store calls must not run here."""

    def test_login_reads_store_in_worker_thread(self) -> None:
        store = _ThreadRecordingStore()
        store.create("alice", [], hash_password("alice123", TEST_ROUNDS))
        service = AuthService(store, secret_key=TEST_SECRET, bcrypt_rounds=TEST_ROUNDS)

        asyncio.run(service.login("alice", "alice123"))

        assert len(store.threads) == 2
        assert threading.get_ident() not in store.threads

    def test_bootstrap_writes_store_in_worker_thread(self) -> None:
        store = _ThreadRecordingStore()
        service = AuthService(store, secret_key=TEST_SECRET, bcrypt_rounds=TEST_ROUNDS)

        asyncio.run(service.bootstrap_admin("admin", "admin123", [Role.admin]))

        assert store.threads
        assert threading.get_ident() not in store.threads


class TestBootstrap:
    def test_bootstrap_on_empty_store(self) -> None:
        service = AuthService(InMemoryUserStore(), secret_key=TEST_SECRET, bcrypt_rounds=TEST_ROUNDS)
        user = asyncio.run(service.bootstrap_admin("admin", "admin123", [Role.admin]))
        assert user.roles == [Role.admin]
        assert asyncio.run(service.login("admin", "admin123")).user.username == "admin"

    def test_bootstrap_refused_when_users_exist(self, service: AuthService) -> None:
        with pytest.raises(SetupComplete):
            asyncio.run(service.bootstrap_admin("root", "root123", [Role.admin]))

    def test_bootstrap_rejects_password_over_byte_limit(self) -> None:
        store = InMemoryUserStore()
        service = AuthService(store, secret_key=TEST_SECRET, bcrypt_rounds=TEST_ROUNDS)
        with pytest.raises(ValidationError):
            asyncio.run(service.bootstrap_admin("admin", "é" * 40, [Role.admin]))
        assert store.count() == 0
