#!/usr/bin/env python3
"""
Beer Diary -- maintenance commands.

The web app itself runs under an ASGI server (uvicorn asgi:app). This script
covers the chores that happen outside a request:

Usage:
  python main.py create-user alice                 # prompts for the password
  python main.py create-user alice --password pw1
  python main.py seed                              # add sample beers
  python main.py purge-sessions                    # drop expired sessions now

Configuration comes from the same environment / .env file as the app
(DATABASE_URL, SECRET_KEY, DEBUG, BCRYPT_ROUNDS, ...).
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.passwords import register_user
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings
from core.database import create_db_engine
from core.errors import DuplicateUsername, ValidationError
from diary.store import DiaryStore

SAMPLE_BEERS = [
    (
        "Pilsner Urquell",
        "https://images.unsplash.com/photo-1608270586620-248524c67de9",
        "Crisp Czech lager with a soft malt body and a clean Saaz hop finish.",
    ),
    (
        "Westmalle Tripel",
        "https://images.unsplash.com/photo-1535958636474-b021ee887b13",
        "Golden Trappist ale. Fruity, spicy, dangerously drinkable at 9.5%.",
    ),
    (
        "Guinness Draught",
        "https://images.unsplash.com/photo-1566633806327-68e152aaf26d",
        "Roasty dry stout, nitrogen creamy head, coffee and cocoa notes.",
    ),
]


def _create_user(users: UserStore, username: str, password: Optional[str]) -> int:
    if password is None:
        password = getpass.getpass("Password: ")
        if password != getpass.getpass("Repeat password: "):
            print("  [!] Passwords do not match.", file=sys.stderr)
            return 1
    try:
        user_id = register_user(users, username, password)
    except (ValidationError, DuplicateUsername) as exc:
        print(f"  [!] {exc}", file=sys.stderr)
        return 1
    print(f"Created user '{username.strip()}' (id={user_id}).")
    return 0


def _seed(diary: DiaryStore) -> int:
    existing = {b.name for b in diary.list_beers()}
    added = 0
    for name, image, description in SAMPLE_BEERS:
        if name in existing:
            continue
        diary.create_beer(name, image, description)
        added += 1
    print(f"Seeded {added} beer(s); {len(SAMPLE_BEERS) - added} already present.")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Beer Diary maintenance commands.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-user", help="Register a user from the command line")
    create.add_argument("username")
    create.add_argument("--password", help="Password (prompted for when omitted)")

    sub.add_parser("seed", help="Insert the sample beers that are not present yet")
    sub.add_parser("purge-sessions", help="Delete expired sessions")

    args = parser.parse_args(argv)

    settings = get_settings()
    engine = create_db_engine(settings.database_url)
    try:
        if args.command == "create-user":
            return _create_user(UserStore(engine), args.username, args.password)
        if args.command == "seed":
            return _seed(DiaryStore(engine))
        removed = SessionManager(engine, ttl_seconds=settings.session_ttl_seconds).purge_expired()
        print(f"Removed {removed} expired session(s).")
        return 0
    finally:
        engine.dispose()


if __name__ == "__main__":
    sys.exit(main())
