"""
Listing Service

Listing submission: trial activation on first submission, then quota
enforcement against the account's entitlement.
"""

import logging
from datetime import datetime
from typing import Optional

from directory_billing.domain.entitlement import utcnow
from directory_billing.domain.listing import ListingResponse, SubmitListingRequest
from directory_billing.infrastructure.db.repositories.listing_repository import ListingRepository
from directory_billing.infrastructure.exceptions import QuotaExceededError
from directory_billing.infrastructure.services.trial_activator import (
    TrialActivator,
    get_trial_activator,
)


logger = logging.getLogger(__name__)


class ListingService:
    """Submits listings on behalf of an account."""

    def __init__(
        self,
        listing_repo: ListingRepository,
        trial_activator: Optional[TrialActivator] = None,
    ):
        self._listings = listing_repo
        self._trial_activator = trial_activator or get_trial_activator()

    async def submit(
        self,
        account_id: str,
        request: SubmitListingRequest,
        now: Optional[datetime] = None,
    ) -> ListingResponse:
        """
        Submit a listing for moderation.

        Raises:
            QuotaExceededError: pending + approved listings already fill the quota
        """
        now = now or utcnow()
        entitlement, trial_started = await self._trial_activator.activate(account_id, now=now)

        quota = entitlement.effective_quota(now)
        used = await self._listings.count_active_for_owner(account_id)
        if used >= quota:
            logger.info(f"Account {account_id} at listing quota ({used}/{quota})")
            raise QuotaExceededError(account_id, quota, used)

        listing = await self._listings.create(account_id, request.url, request.title)
        logger.info(f"Account {account_id} submitted listing {listing.id}")

        return ListingResponse(
            id=listing.id,
            url=listing.url,
            title=listing.title,
            status=listing.status,
            refresh_status=listing.refresh_status,
            last_refreshed_at=listing.last_refreshed_at,
            boosted_until=listing.boosted_until,
            trial_started=trial_started,
        )
