"""
Admin Routes for Entitlement Overrides

Gift plans, mark entitlements paid and report on the store. Every route
requires the admin capability; overrides are audited.
"""

import logging

from fastapi import APIRouter, Depends

from directory_billing.api.dependencies import require_admin
from directory_billing.domain.entitlement import (
    Entitlement,
    EntitlementSummaryResponse,
    GrantEntitlementRequest,
    MarkPaidRequest,
)
from directory_billing.infrastructure.services.admin_overrides import get_admin_overrides


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")


@router.post("/grant-entitlement", response_model=Entitlement)
async def grant_entitlement(
    request: GrantEntitlementRequest,
    admin_id: str = Depends(require_admin),
):
    """Gift a plan for 1 to 12 months. Never shortens existing access."""
    return await get_admin_overrides().grant_entitlement(
        admin_id, request.account_id, request.plan, request.months
    )


@router.post("/mark-paid", response_model=Entitlement)
async def mark_paid(
    request: MarkPaidRequest,
    admin_id: str = Depends(require_admin),
):
    return await get_admin_overrides().mark_paid(admin_id, request.entitlement_ref)


@router.get("/entitlements/summary", response_model=EntitlementSummaryResponse)
async def entitlement_summary(admin_id: str = Depends(require_admin)):
    """Counts by plan, source and payment status, plus active/lapsed totals."""
    return await get_admin_overrides().summary()


@router.get("/entitlements/{account_id}", response_model=Entitlement)
async def get_entitlement(account_id: str, admin_id: str = Depends(require_admin)):
    return await get_admin_overrides().get_entitlement(account_id)
