"""
Scheduled Job Routes

Called by the platform scheduler with the shared cron secret.
"""

import logging

from fastapi import APIRouter, Depends

from directory_billing.api.dependencies import verify_cron_secret
from directory_billing.infrastructure.services.reconciliation_scanner import (
    ReconciliationReport,
    get_reconciliation_scanner,
)


logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/jobs",
    dependencies=[Depends(verify_cron_secret)],
)


@router.get("/reconcile", response_model=ReconciliationReport)
async def reconcile():
    """Run the reconciliation scanner once. Safe to overlap with itself."""
    logger.info("Reconciliation triggered by scheduler")
    return await get_reconciliation_scanner().run()
