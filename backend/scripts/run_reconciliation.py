#!/usr/bin/env python3
"""
Reconciliation Script

Runs the reconciliation scanner once outside the HTTP job endpoint.
Run as a cron job or manually: python -m scripts.run_reconciliation

Usage:
    python -m scripts.run_reconciliation
"""

import asyncio
import logging

# Add parent directory to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from directory_billing.infrastructure.db.database import close_db, init_db
from directory_billing.infrastructure.services.reconciliation_scanner import (
    get_reconciliation_scanner,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    await init_db()
    try:
        report = await get_reconciliation_scanner().run()
    finally:
        await close_db()

    print("\n=== Reconciliation Complete ===")
    for notification_type, counts in report.notifications.items():
        print(
            f"{notification_type}: sent={counts.sent} "
            f"skipped={counts.skipped} failed={counts.failed}"
        )
    print(f"Listing statuses synced: {report.listings_synced}")


if __name__ == "__main__":
    asyncio.run(main())
