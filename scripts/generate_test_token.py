#!/usr/bin/env python3
"""
Test Token Generator

Mints HS256 access tokens for calling the messaging API locally, signed
with JWT_SECRET_KEY from the environment / .env.

Usage:
    # Employee token
    python scripts/generate_test_token.py --user-id u-123 --company-id c-1

    # Admin token valid for 8 hours
    python scripts/generate_test_token.py --user-id u-1 --company-id c-1 --role admin --hours 8

    # Print the decoded claims as well
    python scripts/generate_test_token.py --user-id u-123 --company-id c-1 --show-claims

NOTE: This script generates tokens for TESTING ONLY.
In production, tokens are issued by the identity service.
"""

import argparse
import json
import sys
from datetime import timedelta
from pathlib import Path

# Allow running from the repository root without installing the package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import jwt  # noqa: E402

from workspace_chat.config import settings  # noqa: E402
from workspace_chat.core.security import create_access_token  # noqa: E402
from workspace_chat.models.user import Role  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description="Generate a test access token")
    parser.add_argument("--user-id", required=True, help="User id (sub claim)")
    parser.add_argument("--company-id", required=True, help="Company id (tenant)")
    parser.add_argument(
        "--role",
        choices=[role.value for role in Role],
        default=Role.EMPLOYEE.value,
        help="Principal role",
    )
    parser.add_argument("--hours", type=float, default=1.0, help="Validity in hours")
    parser.add_argument("--show-claims", action="store_true", help="Print the decoded claims")
    args = parser.parse_args()

    token = create_access_token(
        user_id=args.user_id,
        role=Role(args.role),
        company_id=args.company_id,
        expires_delta=timedelta(hours=args.hours),
    )

    if args.show_claims:
        claims = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
        print(json.dumps(claims, indent=2), file=sys.stderr)

    print(token)
    print(f"\nAuthorization: Bearer {token}", file=sys.stderr)
    print(f"WebSocket: ws://{settings.HOST}:{settings.PORT}{settings.API_PREFIX}/ws?token={token}", file=sys.stderr)


if __name__ == "__main__":
    main()
