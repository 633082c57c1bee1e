#!/usr/bin/env python3
"""Management helpers for the preferred redirect service."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Dict, Iterable

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from redirect_hub import database  # noqa: E402
from redirect_hub.auth.security import hash_password, normalize_username  # noqa: E402
from redirect_hub.auth.service import (  # noqa: E402
    create_user,
    find_user,
    init_storage,
    record_audit_event,
)
from redirect_hub.config import settings  # noqa: E402
from redirect_hub.configuration import ConfigurationStore  # noqa: E402
from redirect_hub.redirect import PREFERRED_HASH, generate_preference_hash  # noqa: E402
from redirect_hub.user_settings import UserSettingStore  # noqa: E402


def _log_system_event(action: str, summary: str, data: Dict[str, object] | None = None) -> None:
    with database.SessionLocal() as session:
        record_audit_event(session, action, summary, data=data)


def _command_create_user(args: argparse.Namespace) -> int:
    init_storage()
    username = normalize_username(args.username)
    with database.SessionLocal() as session:
        existing = find_user(session, username)
        if existing:
            if not args.force:
                print(f"User '{username}' already exists; skipping")
                return 0
            existing.hashed_password = hash_password(args.password)
            if args.company is not None:
                existing.company = args.company or None
            session.add(existing)
            session.commit()
            _log_system_event(
                "user_updated",
                f"Updated credentials for {username}",
                {"user_id": existing.id},
            )
            print(f"Updated existing user '{username}'")
            return 0

        user = create_user(session, username, args.password, company=args.company)
        _log_system_event(
            "user_created",
            f"Created user {user.username}",
            {"user_id": user.id, "company": user.company},
        )
        print(f"Created user '{user.username}' (id={user.id})")
        return 0


def _command_set_config(args: argparse.Namespace) -> int:
    init_storage()
    with database.SessionLocal() as session:
        ConfigurationStore(session).put(args.name, args.value)
    _log_system_event(
        "configuration_updated",
        f"Set {args.name}",
        {"name": args.name, "value": args.value},
    )
    print(f"{args.name} = {args.value}")
    return 0


def _command_rotate_hash(args: argparse.Namespace) -> int:
    init_storage()
    login = normalize_username(args.username)
    with database.SessionLocal() as session:
        store = UserSettingStore(session)
        if store.find_one(login, PREFERRED_HASH) is None and not args.create:
            print(f"No preference hash stored for '{login}'; nothing to rotate")
            return 1
        store.upsert(login, PREFERRED_HASH, generate_preference_hash())
    _log_system_event(
        "preferred_hash_rotated",
        f"Rotated preference hash for {login}",
        {"login": login},
    )
    print(f"Rotated preference hash for '{login}'; existing cookies are now invalid")
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--database-url",
        dest="database_url",
        help="Override the database URL",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create-user", help="Create or update a user")
    create.add_argument("--username", required=True)
    create.add_argument("--password", required=True)
    create.add_argument("--company", help="Company used to pick the home page")
    create.add_argument(
        "--force",
        action="store_true",
        help="Update the password if the user already exists",
    )
    create.set_defaults(func=_command_create_user)

    set_config = subparsers.add_parser(
        "set-config", help="Store a system configuration value",
    )
    set_config.add_argument("name", help="Key, e.g. redirect.external.home")
    set_config.add_argument("value")
    set_config.set_defaults(func=_command_set_config)

    rotate = subparsers.add_parser(
        "rotate-hash",
        help="Replace a user's preference hash, invalidating issued cookies",
    )
    rotate.add_argument("--username", required=True)
    rotate.add_argument(
        "--create",
        action="store_true",
        help="Store a hash even if the user never saved a preference",
    )
    rotate.set_defaults(func=_command_rotate_hash)

    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    if args.database_url:
        database.reset_session_factory(args.database_url)
        settings.DATABASE_URL = args.database_url

    handler = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return 1

    return handler(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
