#!/usr/bin/env python3
"""
Snapp Auth -- authentication and role-based access control service.

Usage:
  python main.py serve
  python main.py serve --host 0.0.0.0 --port 4400
  python main.py seed-users --file seeds/users.json

Environment variables (see core/config.py for the full list):
  SECRET_KEY            JWT signing key, at least 32 characters. Required unless DEBUG=true.
  DEBUG                 true to auto-generate a throwaway SECRET_KEY.
  TOKEN_EXPIRE_SECONDS  Access token lifetime (default 600).
  DATABASE_URL          SQLAlchemy URL for a persistent user store. Empty = in-memory.
  USERS_FILE            JSON users file seeded on server startup.
"""

import argparse
import logging
import sys

from core.config import get_settings


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        reload=args.reload,
    )
    return 0


def _seed(args: argparse.Namespace) -> int:
    from auth.seed import seed_users
    from auth.store import build_user_store

    settings = get_settings()
    path = args.file or settings.users_file
    if not path:
        print("  [!] No users file given. Pass --file or set USERS_FILE.")
        return 1

    store = build_user_store(settings)
    try:
        created = seed_users(store, path, settings.bcrypt_rounds)
        total = store.count()
    finally:
        store.close()

    print(f"  Seeded {created} user(s); store now holds {total}.")
    if not settings.database_url:
        print("  Note: DATABASE_URL is not set, so the in-memory store was discarded on exit.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="snapp-auth",
        description="Authentication and role-based access control service.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py serve
  DEBUG=true python main.py serve --reload
  DATABASE_URL=sqlite:///snapp_auth.db python main.py seed-users --file seeds/users.json
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    serve = sub.add_parser("serve", help="Start the HTTP service (seeds USERS_FILE on startup)")
    serve.add_argument("--host", default=None, help="Bind address (default: HOST setting)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: PORT setting)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    serve.set_defaults(func=_serve)

    seed = sub.add_parser("seed-users", help="Seed users from a JSON file into the configured store")
    seed.add_argument(
        "--file",
        "-f",
        metavar="PATH",
        help="Users JSON file; defaults to USERS_FILE",
    )
    seed.set_defaults(func=_seed)

    args = parser.parse_args(argv)
    if not getattr(args, "func", None):
        parser.print_help()
        return 1

    logging.basicConfig(level=logging.INFO, format="%(levelname)-5s %(name)s %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
