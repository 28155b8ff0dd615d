#!/usr/bin/env python3
"""
Mint a session token for local testing.

Skips the Google/Apple round trip: upserts the user directly and prints a
bearer token signed with JWT_SECRET from .env.

Usage:
    python scripts/issue_token.py --provider google --subject 1234 [--email a@b.c] [--name "Jo Doe"]
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session

from staffing.auth.providers import VerifiedProfile
from staffing.auth.sessions import issue_session_token, upsert_user
from staffing.core.config import settings
from staffing.core.database import create_db_and_tables, engine


def main():
    parser = argparse.ArgumentParser(description="Issue a session token for a test user")
    parser.add_argument("--provider", choices=["google", "apple"], required=True)
    parser.add_argument("--subject", required=True, help="Subject id at the provider")
    parser.add_argument("--email")
    parser.add_argument("--name")
    parser.add_argument("--picture")
    args = parser.parse_args()

    if not settings.jwt_secret:
        print("Error: JWT_SECRET is not set.")
        print("Add JWT_SECRET to your .env file and run again.")
        sys.exit(1)

    profile = VerifiedProfile(
        provider=args.provider,
        subject=args.subject,
        email=args.email,
        name=args.name,
        picture=args.picture,
    )

    create_db_and_tables()
    with Session(engine) as session:
        upsert_user(session, profile)

    print()
    print("=" * 60)
    print(f"Session token for {profile.user_key}:")
    print("=" * 60)
    print()
    print(issue_session_token(profile))
    print()
    print("Use it as: Authorization: Bearer <token>")


if __name__ == "__main__":
    main()
