"""
Listing Repository

Data access for directory listings: submission, quota counting, one-time
purchase effects and freshness queries.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from directory_billing.domain.entitlement import as_utc
from directory_billing.domain.listing import Listing, ListingStatus, RefreshStatus
from directory_billing.domain.transitions import ListingEffect
from directory_billing.infrastructure.db.models.listing import ListingModel
from directory_billing.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)

# Listings that occupy a quota slot
_QUOTA_STATUSES = (ListingStatus.PENDING.value, ListingStatus.APPROVED.value)


def _parse_id(listing_id: str) -> Optional[UUID]:
    try:
        return UUID(str(listing_id))
    except ValueError:
        return None


class ListingRepository(BaseRepository[ListingModel]):
    """Repository for listing operations."""

    def __init__(self, session: AsyncSession):
        super().__init__(ListingModel, session)

    async def create(
        self,
        owner_account_id: str,
        url: str,
        title: Optional[str] = None,
    ) -> Listing:
        """Create a pending listing."""
        model = ListingModel(owner_account_id=owner_account_id, url=url, title=title)
        model = await self.add(model)
        return self._to_domain(model)

    async def get(self, listing_id: str) -> Optional[Listing]:
        """Get a listing by id. Malformed ids are treated as missing."""
        ref = _parse_id(listing_id)
        if ref is None:
            return None
        model = await self.get_model(ref)
        return self._to_domain(model) if model else None

    async def count_active_for_owner(self, owner_account_id: str) -> int:
        """Pending plus approved listings for an account."""
        result = await self._session.execute(
            select(func.count())
            .select_from(ListingModel)
            .where(
                ListingModel.owner_account_id == owner_account_id,
                ListingModel.status.in_(_QUOTA_STATUSES),
            )
        )
        return result.scalar_one()

    async def apply_effect(self, listing_id: str, effect: ListingEffect) -> Optional[Listing]:
        """
        Write a one-time purchase effect to a listing.

        The effect holds absolute values, so applying it twice is harmless.

        Returns:
            Updated listing, or None if the listing does not exist
        """
        ref = _parse_id(listing_id)
        model = await self.get_model(ref) if ref else None
        if model is None:
            return None

        for field, value in effect.changes().items():
            setattr(model, field, value.value if isinstance(value, RefreshStatus) else value)

        model = await self.add(model)
        return self._to_domain(model)

    async def find_stale_approved(self, cutoff: datetime) -> list[Listing]:
        """Approved listings never refreshed, or last refreshed at or before cutoff."""
        result = await self._session.execute(
            select(ListingModel)
            .where(
                ListingModel.status == ListingStatus.APPROVED.value,
                or_(
                    ListingModel.last_refreshed_at.is_(None),
                    ListingModel.last_refreshed_at <= cutoff,
                ),
            )
            .order_by(ListingModel.owner_account_id, ListingModel.created_at)
        )
        return [self._to_domain(m) for m in result.scalars().all()]

    async def sync_refresh_status(self, cutoff: datetime) -> int:
        """
        Bring the stored refresh_status column in line with the derived value.

        Returns:
            Number of listings whose stored status changed
        """
        is_fresh = and_(
            ListingModel.last_refreshed_at.is_not(None),
            ListingModel.last_refreshed_at > cutoff,
        )
        marked_fresh = await self._session.execute(
            update(ListingModel)
            .where(is_fresh, ListingModel.refresh_status != RefreshStatus.FRESH.value)
            .values(refresh_status=RefreshStatus.FRESH.value)
            .execution_options(synchronize_session=False)
        )
        marked_stale = await self._session.execute(
            update(ListingModel)
            .where(
                or_(
                    ListingModel.last_refreshed_at.is_(None),
                    ListingModel.last_refreshed_at <= cutoff,
                ),
                ListingModel.refresh_status != RefreshStatus.STALE.value,
            )
            .values(refresh_status=RefreshStatus.STALE.value)
            .execution_options(synchronize_session=False)
        )
        return marked_fresh.rowcount + marked_stale.rowcount

    def _to_domain(self, model: ListingModel) -> Listing:
        return Listing(
            id=str(model.id),
            owner_account_id=model.owner_account_id,
            url=model.url,
            title=model.title,
            status=ListingStatus(model.status),
            refresh_status=RefreshStatus(model.refresh_status),
            last_refreshed_at=as_utc(model.last_refreshed_at),
            boosted_until=as_utc(model.boosted_until),
            created_at=as_utc(model.created_at),
        )
