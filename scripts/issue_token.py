#!/usr/bin/env python3
"""Create (or reuse) a user in an account and print an access token.

Usage:
    # Using environment variables:
    TOKEN_EMAIL=ops@example.com TOKEN_ACCOUNT_ID=1 python scripts/issue_token.py

    # Or with command line args:
    python scripts/issue_token.py --email ops@example.com --account-id 1 --role admin

Environment Variables:
    TOKEN_EMAIL: Email of the user the token is issued for
    TOKEN_ACCOUNT_ID: Account the user belongs to
    JWT_SECRET: Signing secret; must match the API server's
    DATABASE_URL: PostgreSQL connection string (optional, uses memory store if not set)
"""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Add project root to path for imports
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

ROLES = ("admin", "member", "viewer")


def issue_token(
    email: str,
    account_id: int,
    role: str,
    *,
    ttl_minutes: int | None = None,
    dry_run: bool = False,
) -> dict:
    """Resolve the user and issue a token.

    Returns:
        dict with user_id, email, status ('created', 'existing' or 'dry_run')
        and access_token when one was issued
    """
    # Import here to avoid loading config before env vars are set
    from taskhub.service.runtime import get_runtime

    runtime = get_runtime()

    user = runtime.store.get_user_by_email(email)
    if user:
        if user.account_id != account_id:
            raise ValueError(
                f"user {email} belongs to account {user.account_id}, not {account_id}"
            )
        if user.role != role:
            raise ValueError(f"user {email} has role {user.role}, not {role}")
        status = "existing"
    elif dry_run:
        print(f"[DRY RUN] Would create {role} user {email} in account {account_id}")
        return {"user_id": None, "email": email, "status": "dry_run"}
    else:
        user = runtime.store.create_user(email, account_id=account_id, role=role)
        status = "created"

    if dry_run:
        return {"user_id": user.id, "email": email, "status": "dry_run"}

    tokens = runtime.auth.issue_access_token(user, ttl_minutes=ttl_minutes)
    return {
        "user_id": user.id,
        "email": email,
        "status": status,
        "access_token": tokens["access_token"],
        "expires_at": tokens["expires_at"],
    }


def main():
    parser = argparse.ArgumentParser(
        description="Issue a TaskHub access token",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--email",
        default=os.environ.get("TOKEN_EMAIL"),
        help="User email (or set TOKEN_EMAIL env var)",
    )
    parser.add_argument(
        "--account-id",
        type=int,
        default=int(os.environ.get("TOKEN_ACCOUNT_ID", "0")) or None,
        help="Account id (or set TOKEN_ACCOUNT_ID env var)",
    )
    parser.add_argument("--role", choices=ROLES, default="member")
    parser.add_argument("--ttl-minutes", type=int, default=None)
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without making changes",
    )

    args = parser.parse_args()

    if not args.email:
        print("Error: --email or TOKEN_EMAIL environment variable required")
        sys.exit(1)

    if not args.account_id or args.account_id < 1:
        print("Error: --account-id or TOKEN_ACCOUNT_ID must be a positive integer")
        sys.exit(1)

    if not os.environ.get("JWT_SECRET"):
        print("Error: JWT_SECRET must be set to the API server's signing secret")
        sys.exit(1)

    # Use memory store if no database configured
    if not os.environ.get("DATABASE_URL"):
        os.environ["USE_MEMORY_STORE"] = "true"
        print("Note: Using in-memory store; the token is only valid for this process")

    try:
        result = issue_token(
            args.email,
            args.account_id,
            args.role,
            ttl_minutes=args.ttl_minutes,
            dry_run=args.dry_run,
        )
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    if result.get("access_token"):
        print(f"User {result['email']} (id: {result['user_id']}, {result['status']})")
        print(f"  Expires: {result['expires_at']}")
        print(result["access_token"])


if __name__ == "__main__":
    main()
