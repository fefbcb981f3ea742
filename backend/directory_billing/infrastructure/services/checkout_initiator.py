"""
Checkout Initiator

Starts a hosted payment session for a subscription or one-time purchase.
Resolves the provider customer first, persisting a newly created customer
ref before the session exists so concurrent initiations converge on one
customer. Never marks anything paid; only webhooks do that.
"""

import logging
from typing import Optional

from directory_billing.config.settings import get_settings
from directory_billing.domain.billing_events import PurchaseType
from directory_billing.domain.checkout import CheckoutResponse
from directory_billing.domain.entitlement import parse_plan
from directory_billing.infrastructure.db.database import get_session_context
from directory_billing.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
    get_entitlement_repository,
)
from directory_billing.infrastructure.db.repositories.listing_repository import ListingRepository
from directory_billing.infrastructure.exceptions import (
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from directory_billing.infrastructure.payments.stripe_service import (
    StripeService,
    get_stripe_service,
)


logger = logging.getLogger(__name__)


class CheckoutInitiator:
    """Creates hosted checkout sessions."""

    def __init__(
        self,
        stripe_service: Optional[StripeService] = None,
        repo: Optional[EntitlementRepository] = None,
    ):
        self._stripe = stripe_service or get_stripe_service()
        self._repo = repo or get_entitlement_repository()
        self._site_url = get_settings().site_url.rstrip("/")

    async def initiate(
        self,
        account_id: str,
        purchase_type: PurchaseType,
        price_ref: Optional[str] = None,
        listing_id: Optional[str] = None,
    ) -> CheckoutResponse:
        """
        Start a checkout.

        Raises:
            ValidationError: a listing-scoped purchase without a listing
            NotFoundError: the listing does not exist
            AuthorizationError: the listing belongs to another account
            ProviderUnreachableError: Stripe could not be reached; retry
        """
        if purchase_type.requires_listing and not listing_id:
            raise ValidationError(
                f"{purchase_type.value} purchases require a listingId",
                {"purchase_type": purchase_type.value},
            )
        if listing_id:
            await self._check_listing_owner(account_id, listing_id)

        customer_ref = await self._resolve_customer(account_id)

        metadata = {
            "account_id": account_id,
            "purchase_type": purchase_type.value,
        }
        if purchase_type.is_subscription:
            metadata["plan"] = parse_plan(purchase_type.value).value
        if listing_id:
            metadata["listing_id"] = listing_id

        session_id, redirect_url = await self._stripe.create_checkout_session(
            customer_id=customer_ref,
            price_id=price_ref or self._stripe.default_price(purchase_type),
            purchase_type=purchase_type,
            metadata=metadata,
            success_url=f"{self._site_url}/dashboard/billing/success",
            cancel_url=f"{self._site_url}/pricing",
        )
        return CheckoutResponse(redirect_url=redirect_url, session_id=session_id)

    async def _resolve_customer(self, account_id: str) -> str:
        current = await self._repo.get(account_id)
        if current is not None and current.billing_customer_ref:
            return current.billing_customer_ref

        created_ref = await self._stripe.create_customer(account_id)
        stored = await self._repo.claim_customer_ref(account_id, created_ref)

        if stored.billing_customer_ref != created_ref:
            logger.warning(
                f"Concurrent checkout for {account_id} stored customer "
                f"{stored.billing_customer_ref}; customer {created_ref} is unused"
            )
        return stored.billing_customer_ref

    async def _check_listing_owner(self, account_id: str, listing_id: str) -> None:
        async with get_session_context() as session:
            listing = await ListingRepository(session).get(listing_id)

        if listing is None:
            raise NotFoundError(f"Listing {listing_id} not found", table="listings")
        if listing.owner_account_id != account_id:
            raise AuthorizationError(
                "Listing belongs to another account",
                {"listing_id": listing_id},
            )


_checkout_initiator_instance: Optional[CheckoutInitiator] = None


def get_checkout_initiator() -> CheckoutInitiator:
    """Get or create checkout initiator singleton."""
    global _checkout_initiator_instance

    if _checkout_initiator_instance is None:
        _checkout_initiator_instance = CheckoutInitiator()

    return _checkout_initiator_instance
