# src/skul_relay/scripts/tokens.py
"""Mint a development access token for an existing profile.

Usage:
  python -m skul_relay.scripts.tokens <profile-id> [--minutes 60] [--cookie]
"""

from __future__ import annotations

import argparse
import sys

from skul_relay.core.security import create_access_token
from skul_relay.core.settings import settings
from skul_relay.db.session import SessionLocal
from skul_relay.models import Profile


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Mint a JWT for a profile")
    parser.add_argument("profile_id", help="Profile id placed in the token subject")
    parser.add_argument("--minutes", type=int, default=None, help="Override token lifetime")
    parser.add_argument(
        "--cookie",
        action="store_true",
        help="Print a Cookie header instead of an Authorization header",
    )
    parser.add_argument(
        "--no-check",
        action="store_true",
        help="Skip checking that the profile exists",
    )
    args = parser.parse_args(argv)

    if not args.no_check:
        with SessionLocal() as db:
            if db.get(Profile, args.profile_id) is None:
                print(f"[tokens] ERROR: profile {args.profile_id} not found", file=sys.stderr)
                return 1

    token = create_access_token(args.profile_id, expires_minutes=args.minutes)
    if args.cookie:
        print(f"Cookie: {settings.session_cookie_name}={token}")
    else:
        print(f"Authorization: Bearer {token}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
