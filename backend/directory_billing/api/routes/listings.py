"""
Listing API Routes

Listing submission. The first submission starts the account's free trial.
"""

import logging

from fastapi import APIRouter, Depends, status

from directory_billing.api.dependencies import ListingRepoDep, get_current_user_id
from directory_billing.domain.listing import ListingResponse, SubmitListingRequest
from directory_billing.infrastructure.services.listing_service import ListingService


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/listings",
    response_model=ListingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_listing(
    request: SubmitListingRequest,
    listings: ListingRepoDep,
    user_id: str = Depends(get_current_user_id),
):
    """
    Submit a listing for moderation.

    Returns 409 when pending plus approved listings already fill the quota.
    """
    return await ListingService(listings).submit(user_id, request)
