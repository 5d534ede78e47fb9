"""
tests/test_seed.py -- Tests for auth/seed.py and the seed-users CLI command.

Covers:
  - valid entries are created with hashed passwords and parsed roles
  - entries missing username/password, with unknown roles, or duplicating an
    existing user are skipped without aborting the rest
  - missing, malformed, and non-array files seed nothing
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from auth.models import Role
from auth.seed import seed_users
from auth.store import InMemoryUserStore
from auth.tokens import verify_password
from conftest import TEST_ROUNDS
from main import main


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "users.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_seeds_valid_entries(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        [
            {"username": "admin", "password": "admin123", "roles": ["admin"]},
            {"username": "gm1", "password": "gm123", "roles": ["gm", "player"]},
            {"username": "p1", "password": "p123"},
        ],
    )
    store = InMemoryUserStore()
    assert seed_users(store, path, TEST_ROUNDS) == 3

    admin = store.get("admin")
    assert admin.roles == [Role.admin]
    assert verify_password("admin123", admin.hashed_password)
    assert store.get("gm1").roles == [Role.gm, Role.player]
    assert store.get("p1").roles == []


def test_skips_bad_entries_and_continues(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    path = _write(
        tmp_path,
        [
            {"username": "nopass"},
            {"password": "nouser"},
            "not-an-object",
            {"username": "wizard", "password": "pw", "roles": ["gm", "wizard"]},
            {"username": "ok", "password": "pw", "roles": ["player"]},
        ],
    )
    store = InMemoryUserStore()
    with caplog.at_level(logging.WARNING, logger="snapp.seed"):
        assert seed_users(store, path, TEST_ROUNDS) == 1

    assert [u.username for u in store.list()] == ["ok"]
    assert store.get("wizard") is None
    assert any("wizard" in r.getMessage() for r in caplog.records)


def test_over_long_password_is_skipped(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    """A password bcrypt cannot hash skips that entry, not the whole file."""
    path = _write(
        tmp_path,
        [
            {"username": "long", "password": "x" * 80},
            {"username": "accents", "password": "é" * 40},
            {"username": "ok", "password": "pw"},
            {"username": "max", "password": "y" * 72},
        ],
    )
    store = InMemoryUserStore()
    with caplog.at_level(logging.WARNING, logger="snapp.seed"):
        assert seed_users(store, path, TEST_ROUNDS) == 2

    assert [u.username for u in store.list()] == ["max", "ok"]
    assert any("long" in r.getMessage() and r.levelno == logging.WARNING for r in caplog.records)


def test_existing_user_is_left_alone(tmp_path: Path) -> None:
    store = InMemoryUserStore()
    store.create("admin", [Role.admin], "existing-hash")
    path = _write(tmp_path, [{"username": "admin", "password": "other", "roles": ["player"]}])

    assert seed_users(store, path, TEST_ROUNDS) == 0
    assert store.get("admin").hashed_password == "existing-hash"
    assert store.get("admin").roles == [Role.admin]


def test_missing_file_seeds_nothing(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    store = InMemoryUserStore()
    with caplog.at_level(logging.WARNING, logger="snapp.seed"):
        assert seed_users(store, tmp_path / "absent.json", TEST_ROUNDS) == 0
    assert store.count() == 0
    assert "not found" in caplog.text


@pytest.mark.parametrize("content", ["{not json", '{"username": "admin"}'])
def test_malformed_file_seeds_nothing(tmp_path: Path, caplog: pytest.LogCaptureFixture, content: str) -> None:
    path = tmp_path / "users.json"
    path.write_text(content, encoding="utf-8")
    store = InMemoryUserStore()
    with caplog.at_level(logging.ERROR, logger="snapp.seed"):
        assert seed_users(store, path, TEST_ROUNDS) == 0
    assert store.count() == 0
    assert any(r.levelno == logging.ERROR for r in caplog.records)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def test_cli_seed_users(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    path = _write(tmp_path, [{"username": "admin", "password": "admin123", "roles": ["admin"]}])
    assert main(["seed-users", "--file", str(path)]) == 0
    assert "Seeded 1 user(s)" in capsys.readouterr().out


def test_cli_seed_users_without_file(capsys: pytest.CaptureFixture) -> None:
    assert main(["seed-users"]) == 1
    assert "No users file" in capsys.readouterr().out


def test_cli_without_command_prints_help(capsys: pytest.CaptureFixture) -> None:
    assert main([]) == 1
    assert "seed-users" in capsys.readouterr().out
