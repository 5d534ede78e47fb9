"""
auth/store.py -- User repository: abstract interface plus in-memory and
SQLAlchemy Core implementations.

Pattern: Repository + Data Mapper. UserRepository is the narrow operation set
every caller goes through; nothing outside this module touches the underlying
dict or table, so locking and transaction discipline live in one place.

  InMemoryUserStore -- default. A dict guarded by one threading.Lock. State is
      lost on restart; durability is a non-goal for the reference store.
  SqlUserStore      -- opt-in via DATABASE_URL. One row per user; roles are a
      JSON array column so a role mutation is a single-row update.

Contract shared by both implementations:
  - Usernames are unique and case-sensitive. A failed create leaves no trace.
  - Roles are validated against the Role enumeration on every write.
  - Returned User objects are copies. Mutating them does not touch the store.
  - No hashing happens here. Callers pass an already-hashed password.

Security:
  All SQL uses bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.errors import DuplicateUser, SetupComplete, UserNotFound, ValidationError
from auth.models import Role, User, normalize_roles, parse_role
from core.config import Settings

logger = logging.getLogger("snapp.auth.store")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_username(username: str) -> None:
    if not isinstance(username, str) or not username.strip():
        raise ValidationError("username is required")


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class UserRepository(ABC):
    """Abstract user repository. See module docstring for the shared contract."""

    @abstractmethod
    def create(self, username: str, roles: Iterable[Role] = (), hashed_password: str | None = None) -> User:
        """Insert a new user. Raises DuplicateUser if the username is taken."""

    @abstractmethod
    def create_first(self, username: str, roles: Iterable[Role] = (), hashed_password: str | None = None) -> User:
        """Insert a user only if the repository is empty, atomically.

        Raises SetupComplete otherwise. Used by the bootstrap endpoint so two
        concurrent bootstrap calls cannot both create an admin.
        """

    @abstractmethod
    def get(self, username: str) -> User | None:
        """Look up a user by exact username. Returns None if absent."""

    @abstractmethod
    def list(self) -> list[User]:
        """Return all users ordered by username."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored users."""

    @abstractmethod
    def remove(self, username: str) -> None:
        """Delete a user permanently. Raises UserNotFound if absent."""

    @abstractmethod
    def assign_roles(self, username: str, roles: Iterable[Role]) -> User:
        """Add roles to the user's set. Already-held roles are a no-op."""

    @abstractmethod
    def set_roles(self, username: str, roles: Iterable[Role]) -> User:
        """Replace the user's role set with exactly the given roles."""

    @abstractmethod
    def revoke_role(self, username: str, role: Role) -> User:
        """Remove one role. Revoking a role the user lacks is a no-op."""

    @abstractmethod
    def update_password(self, username: str, hashed_password: str) -> User:
        """Replace the stored password hash."""

    def close(self) -> None:  # noqa: B027 -- optional hook
        """Release any resources held by the store."""


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryUserStore(UserRepository):
    """Dict-backed repository for development, tests, and seeded demos.

    Every operation holds a single lock for its full read-modify-write, so
    concurrent role assignment and deletion on the same username from
    different threadpool workers are serialized.

    Usage:
        store = InMemoryUserStore()
        store.create("admin", [Role.admin], hash_password("secret"))
        user = store.get("admin")
    """

    def __init__(self) -> None:
        self._users: dict[str, User] = {}
        self._lock = threading.Lock()

    def create(self, username: str, roles: Iterable[Role] = (), hashed_password: str | None = None) -> User:
        _check_username(username)
        parsed = normalize_roles(roles)
        with self._lock:
            return self._insert(username, parsed, hashed_password)

    def create_first(self, username: str, roles: Iterable[Role] = (), hashed_password: str | None = None) -> User:
        _check_username(username)
        parsed = normalize_roles(roles)
        with self._lock:
            if self._users:
                raise SetupComplete()
            return self._insert(username, parsed, hashed_password)

    def _insert(self, username: str, roles: list[Role], hashed_password: str | None) -> User:
        # Caller holds the lock.
        if username in self._users:
            raise DuplicateUser(username)
        user = User(username=username, roles=roles, hashed_password=hashed_password, created_at=_now_iso())
        self._users[username] = user
        return copy.deepcopy(user)

    def get(self, username: str) -> User | None:
        with self._lock:
            user = self._users.get(username)
            return copy.deepcopy(user) if user is not None else None

    def list(self) -> list[User]:
        with self._lock:
            return [copy.deepcopy(self._users[name]) for name in sorted(self._users)]

    def count(self) -> int:
        with self._lock:
            return len(self._users)

    def remove(self, username: str) -> None:
        with self._lock:
            if username not in self._users:
                raise UserNotFound(username)
            del self._users[username]

    def assign_roles(self, username: str, roles: Iterable[Role]) -> User:
        requested = normalize_roles(roles)
        with self._lock:
            user = self._require(username)
            user.roles = normalize_roles([*user.roles, *requested])
            return copy.deepcopy(user)

    def set_roles(self, username: str, roles: Iterable[Role]) -> User:
        requested = normalize_roles(roles)
        with self._lock:
            user = self._require(username)
            user.roles = requested
            return copy.deepcopy(user)

    def revoke_role(self, username: str, role: Role) -> User:
        target = parse_role(role)
        with self._lock:
            user = self._require(username)
            user.roles = [r for r in user.roles if r != target]
            return copy.deepcopy(user)

    def update_password(self, username: str, hashed_password: str) -> User:
        with self._lock:
            user = self._require(username)
            user.hashed_password = hashed_password
            return copy.deepcopy(user)

    def _require(self, username: str) -> User:
        # Caller holds the lock. Returns the live record, not a copy.
        user = self._users.get(username)
        if user is None:
            raise UserNotFound(username)
        return user


# ---------------------------------------------------------------------------
# SQLAlchemy Core implementation
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("username", String(255), primary_key=True),
    Column("hashed_password", Text),  # NULL for non-password identities
    Column("roles", Text, nullable=False, server_default="[]"),  # JSON array of Role values
    Column("created_at", String(32), nullable=False),
)


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


class SqlUserStore(UserRepository):
    """Repository backed by any SQLAlchemy-supported database.

    Each mutation runs in one transaction (engine.begin()). A process-local
    lock additionally serializes read-modify-write role updates, because
    SQLite's deferred transactions would otherwise let two writers read the
    same role set and lose one update. Reads take the lock as well: an
    in-memory database has a single shared connection, and a reader closing
    it mid-write would roll back the writer's transaction.

    Usage:
        store = SqlUserStore("sqlite:///snapp_auth.db")
        store.create("admin", [Role.admin], hash_password("secret"))
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        engine_args: dict = {}
        in_memory = ":memory:" in db_url or "mode=memory" in db_url
        if db_url.startswith("sqlite"):
            engine_args["connect_args"] = {"check_same_thread": False}
            if in_memory:
                # One shared connection, or every pool thread sees its own empty DB.
                engine_args["poolclass"] = StaticPool
        self.engine: Engine = create_engine(db_url, **engine_args)
        if db_url.startswith("sqlite") and not in_memory:
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._lock = threading.Lock()

    def create(self, username: str, roles: Iterable[Role] = (), hashed_password: str | None = None) -> User:
        _check_username(username)
        parsed = normalize_roles(roles)
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    return self._insert(conn, username, parsed, hashed_password)
            except IntegrityError as exc:
                raise DuplicateUser(username) from exc

    def create_first(self, username: str, roles: Iterable[Role] = (), hashed_password: str | None = None) -> User:
        _check_username(username)
        parsed = normalize_roles(roles)
        with self._lock:
            with self.engine.begin() as conn:
                existing = conn.execute(select(func.count()).select_from(_users)).scalar()
                if existing:
                    raise SetupComplete()
                return self._insert(conn, username, parsed, hashed_password)

    def _insert(self, conn: Connection, username: str, roles: list[Role], hashed_password: str | None) -> User:
        user = User(username=username, roles=roles, hashed_password=hashed_password, created_at=_now_iso())
        conn.execute(
            _users.insert().values(
                username=user.username,
                hashed_password=user.hashed_password,
                roles=_dump_roles(user.roles),
                created_at=user.created_at,
            )
        )
        return user

    def get(self, username: str) -> User | None:
        with self._lock, self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list(self) -> list[User]:
        with self._lock, self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def count(self) -> int:
        with self._lock, self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def remove(self, username: str) -> None:
        with self._lock:
            with self.engine.begin() as conn:
                result = conn.execute(_users.delete().where(_users.c.username == username))
        if result.rowcount == 0:
            raise UserNotFound(username)

    def assign_roles(self, username: str, roles: Iterable[Role]) -> User:
        requested = normalize_roles(roles)
        return self._update_roles(username, lambda current: normalize_roles([*current, *requested]))

    def set_roles(self, username: str, roles: Iterable[Role]) -> User:
        requested = normalize_roles(roles)
        return self._update_roles(username, lambda current: requested)

    def revoke_role(self, username: str, role: Role) -> User:
        target = parse_role(role)
        return self._update_roles(username, lambda current: [r for r in current if r != target])

    def _update_roles(self, username: str, change) -> User:
        with self._lock:
            with self.engine.begin() as conn:
                user = self._require(conn, username)
                user.roles = change(user.roles)
                conn.execute(
                    _users.update().where(_users.c.username == username).values(roles=_dump_roles(user.roles))
                )
        return user

    def update_password(self, username: str, hashed_password: str) -> User:
        with self._lock:
            with self.engine.begin() as conn:
                user = self._require(conn, username)
                conn.execute(
                    _users.update().where(_users.c.username == username).values(hashed_password=hashed_password)
                )
        user.hashed_password = hashed_password
        return user

    def _require(self, conn: Connection, username: str) -> User:
        row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        if row is None:
            raise UserNotFound(username)
        return _row_to_user(row)

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _dump_roles(roles: list[Role]) -> str:
    return json.dumps([r.value for r in roles])


def _row_to_user(row) -> User:
    # normalize_roles re-validates: a row edited outside the app with an
    # unknown role fails loudly instead of granting anything.
    return User(
        username=row.username,
        hashed_password=row.hashed_password,
        roles=normalize_roles(json.loads(row.roles or "[]")),
        created_at=row.created_at,
    )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_user_store(settings: Settings) -> UserRepository:
    """Return the repository selected by DATABASE_URL (in-memory when empty)."""
    if settings.database_url:
        logger.info("Using SQL user store")
        return SqlUserStore(settings.database_url)
    logger.info("Using in-memory user store")
    return InMemoryUserStore()
