"""
auth/seed.py -- Load users from a JSON file into a repository.

File format: a JSON array of objects
    [{"username": "admin", "password": "admin123", "roles": ["admin"]}, ...]

Seeding never aborts startup. Each problem is logged and the offending
entry skipped:
  - missing username or password   -> WARNING, skipped
  - a role outside admin/gm/player -> WARNING, skipped (the whole entry; an
                                      unknown role is never silently dropped)
  - password over 72 UTF-8 bytes    -> WARNING, skipped (bcrypt cannot hash it)
  - username already present       -> WARNING, skipped
  - file missing                   -> WARNING, nothing seeded
  - file unreadable / not an array -> ERROR, nothing seeded

Passwords are hashed here, synchronously. Callers on an event loop should
run seed_users() in a worker thread.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from auth.errors import DuplicateUser, InvalidRole, ValidationError
from auth.models import normalize_roles
from auth.store import UserRepository
from auth.tokens import BCRYPT_ROUNDS, hash_password

logger = logging.getLogger("snapp.seed")


def _load_entries(path: Path) -> list | None:
    if not path.is_file():
        logger.warning("Users file not found at %s, skipping user seeding", path)
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Failed to load users from %s: %s", path, e)
        return None
    if not isinstance(data, list):
        logger.error("Failed to load users from %s: expected a JSON array", path)
        return None
    return data


def seed_users(store: UserRepository, path: str | Path, rounds: int = BCRYPT_ROUNDS) -> int:
    """Create every valid entry of the users file. Returns the number created."""
    file_path = Path(path).expanduser().resolve()
    entries = _load_entries(file_path)
    if entries is None:
        return 0

    created = 0
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict) or not entry.get("username") or not entry.get("password"):
            logger.warning("Skipping entry %d: missing username or password", index)
            continue
        username = entry["username"]
        raw_roles = entry.get("roles") or []
        try:
            roles = normalize_roles(raw_roles)
        except InvalidRole as e:
            logger.warning("Skipping user %r: %s", username, e)
            continue
        try:
            store.create(username, roles, hash_password(str(entry["password"]), rounds))
        except (DuplicateUser, ValidationError) as e:
            logger.warning("Skipping user %r: %s", username, e)
            continue
        created += 1
        logger.info("Seeded user %r with roles: %s", username, ", ".join(r.value for r in roles) or "none")

    logger.info("Seeded %d of %d user(s) from %s", created, len(entries), file_path)
    return created
