"""
Checkout DTOs
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from directory_billing.domain.billing_events import PurchaseType


class CheckoutRequest(BaseModel):
    """Request DTO for starting a hosted checkout."""
    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(..., alias="accountId", min_length=1)
    purchase_type: PurchaseType = Field(..., alias="purchaseType")
    price_ref: Optional[str] = Field(default=None, alias="priceRef")
    listing_id: Optional[str] = Field(default=None, alias="listingId")


class CheckoutResponse(BaseModel):
    """Where to send the browser next."""
    model_config = ConfigDict(populate_by_name=True)

    redirect_url: str = Field(..., alias="redirectUrl")
    session_id: str = Field(..., alias="sessionId")
