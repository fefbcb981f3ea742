"""
Checkout API Routes

Starts hosted Stripe checkouts for subscriptions and one-time purchases.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from directory_billing.api.dependencies import get_current_user_id
from directory_billing.domain.checkout import CheckoutRequest, CheckoutResponse
from directory_billing.infrastructure.services.checkout_initiator import get_checkout_initiator


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/checkout", response_model=CheckoutResponse)
async def create_checkout(
    request: CheckoutRequest,
    user_id: str = Depends(get_current_user_id),
):
    """
    Create a Stripe Checkout Session.

    Returns the hosted checkout URL to redirect the browser to. A 503
    response means Stripe was unreachable and the client may retry.
    """
    if request.account_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="accountId does not match the authenticated account",
        )

    return await get_checkout_initiator().initiate(
        account_id=user_id,
        purchase_type=request.purchase_type,
        price_ref=request.price_ref,
        listing_id=request.listing_id,
    )
