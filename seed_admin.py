#!/usr/bin/env python3
"""
Seed the default administrator into an Enigma SQLite database.

Runs the same idempotent seeding the API performs on the first request
of every process: applies pending migrations, then ensures the CORE
domain, the administrator account and its member profile exist.
Existing accounts are left untouched, so this never resets a password.

Usage:
    python seed_admin.py --db ./enigma.db --email admin@example.com --name "Main Admin"

If --password is omitted, you will be prompted to enter it securely.
"""

import argparse
import asyncio
import getpass
import sys

from enigma_api.app.core.config import Settings
from enigma_api.app.core.db import Database
from enigma_api.app.core.exceptions import DependencyError
from enigma_api.app.core.logging_config import setup_logging
from enigma_api.app.services.seed_service import SeedService
from enigma_api.app.services.user_service import UserService


def main() -> None:
    ap = argparse.ArgumentParser(description="Seed the Enigma administrator (SQLite).")
    ap.add_argument("--db", required=True, help="Path to SQLite DB file (e.g., ./enigma.db)")
    ap.add_argument("--email", required=True, help="Administrator email")
    ap.add_argument("--name", default="", help="Administrator display name")
    ap.add_argument("--password", help="Administrator password. If omitted, you'll be prompted securely.")
    args = ap.parse_args()

    setup_logging("INFO")
    password = args.password or getpass.getpass("Administrator password: ")
    if not password:
        print("[!] Empty password is not allowed.", file=sys.stderr)
        sys.exit(1)

    db = Database(args.db)
    try:
        db.connect()
    except DependencyError as exc:
        print(f"[!] {exc}", file=sys.stderr)
        sys.exit(1)

    config = Settings(
        database_url=args.db,
        default_admin_email=args.email,
        default_admin_password=password,
        default_admin_name=args.name,
    )
    asyncio.run(SeedService.seed_admin(db, config))

    user = asyncio.run(UserService.get_by_email(db, args.email))
    if user is None:
        print(f"[!] Seeding failed for {args.email}; see log above.", file=sys.stderr)
        sys.exit(2)
    print(f"[+] Administrator present: {user.email} (role={user.role.value})")


if __name__ == "__main__":
    main()
