"""
Entitlement API Routes

Read-only view of the caller's entitlement.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from directory_billing.api.dependencies import get_current_user_id
from directory_billing.domain.entitlement import EntitlementStatusResponse
from directory_billing.infrastructure.db.repositories.entitlement_repository import (
    get_entitlement_repository,
)


router = APIRouter()


@router.get("/entitlements/me", response_model=EntitlementStatusResponse)
async def get_my_entitlement(user_id: str = Depends(get_current_user_id)):
    """Current plan, quota and validity. 404 until the first listing or purchase."""
    entitlement = await get_entitlement_repository().get(user_id)
    if entitlement is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No entitlement for this account",
        )
    return EntitlementStatusResponse.from_entitlement(entitlement)
