"""
Freshness Tracker

Pure staleness computation for the per-listing content refresh obligation.
"""

from datetime import datetime, timedelta
from typing import Optional

from directory_billing.domain.entitlement import Entitlement, FeatureFlag, as_utc
from directory_billing.domain.listing import RefreshStatus

DEFAULT_WINDOW_DAYS = 90


def refresh_status(
    last_refreshed_at: Optional[datetime],
    now: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> RefreshStatus:
    """fresh iff last_refreshed_at is set and now - last_refreshed_at < window."""
    if last_refreshed_at is None:
        return RefreshStatus.STALE
    if now - as_utc(last_refreshed_at) < timedelta(days=window_days):
        return RefreshStatus.FRESH
    return RefreshStatus.STALE


def stale_before(now: datetime, window_days: int = DEFAULT_WINDOW_DAYS) -> datetime:
    """Cutoff: listings last refreshed at or before this instant are stale."""
    return now - timedelta(days=window_days)


def refresh_included(entitlement: Optional[Entitlement], now: datetime) -> bool:
    """Whether the owner's plan covers recurring refreshes right now."""
    if entitlement is None:
        return False
    return entitlement.has_feature(FeatureFlag.RECURRING_REFRESH, now)
