#!/usr/bin/env python3
"""
Mint an access token for manual API testing.

The token is signed with ``SECRET_KEY`` from the environment, so it is
accepted by a server running with the same key.  The user must exist
for protected routes to accept the token.

Usage:
    python create_token.py --user-id 1 --email admin@example.com --role admin --days 365
"""

import argparse

from enigma_api.app.core.security import build_token_claims, create_access_token


def main() -> None:
    ap = argparse.ArgumentParser(description="Mint an Enigma API access token.")
    ap.add_argument("--user-id", type=int, required=True, help="Id of the user in the users table")
    ap.add_argument("--email", required=True, help="Email claim")
    ap.add_argument("--name", default="", help="Display name claim")
    ap.add_argument("--role", default="user", choices=["user", "admin", "moderator"])
    ap.add_argument("--days", type=int, default=1, help="Token lifetime in days")
    args = ap.parse_args()

    claims = build_token_claims({"id": args.user_id, "name": args.name, "email": args.email, "role": args.role})
    print(create_access_token(claims, expires_delta=args.days * 24 * 60 * 60))


if __name__ == "__main__":
    main()
