#!/usr/bin/env python3
"""
Grant Role Script

Gives an account a role such as admin.

Usage:
    python -m scripts.grant_role <account_id>
    python -m scripts.grant_role <account_id> --role admin
"""

import asyncio
import argparse
import logging

# Add parent directory to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from directory_billing.infrastructure.db.database import close_db
from directory_billing.infrastructure.db.repositories.account_repository import (
    ADMIN_ROLE,
    AccountRoleRepository,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


async def main():
    parser = argparse.ArgumentParser(description="Grant a role to an account")
    parser.add_argument("account_id", help="Account id from the auth provider")
    parser.add_argument(
        "--role",
        default=ADMIN_ROLE,
        help=f"Role to grant (default: {ADMIN_ROLE})"
    )
    args = parser.parse_args()

    try:
        await AccountRoleRepository().grant_role(args.account_id, args.role)
    finally:
        await close_db()


if __name__ == "__main__":
    asyncio.run(main())
