"""
Reconciliation Scanner

Scheduled audit of the Entitlement Store and listings, independent of
webhook delivery. It only sends notifications and syncs the derived
listing refresh_status column; it never writes payment_status or
valid_until.

Each notification is claimed in notification_log before sending, so
overlapping runs send it at most once per (account, type, period). A
failed send releases the claim and the next run retries.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from directory_billing.config.settings import get_settings
from directory_billing.domain.entitlement import Entitlement, utcnow
from directory_billing.domain.freshness import refresh_included, stale_before
from directory_billing.infrastructure.db.database import get_session_context
from directory_billing.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
    get_entitlement_repository,
)
from directory_billing.infrastructure.db.repositories.listing_repository import ListingRepository
from directory_billing.infrastructure.db.repositories.notification_log_repository import (
    NotificationLogRepository,
    get_notification_log_repository,
)
from directory_billing.infrastructure.notifications.notifier import Notifier, get_notifier


logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    """Notification templates sent by the scanner."""
    RENEWAL_REMINDER = "renewal_reminder"
    TRIAL_ENDING = "trial_ending"
    TRIAL_ENDED = "trial_ended"
    REFRESH_NEEDED = "refresh_needed"
    REFRESH_INCLUDED = "refresh_included"


class NotificationCounts(BaseModel):
    sent: int = 0
    skipped: int = 0
    failed: int = 0


class ReconciliationReport(BaseModel):
    """Outcome of one scanner run."""
    started_at: datetime
    finished_at: Optional[datetime] = None
    notifications: dict[str, NotificationCounts] = Field(
        default_factory=lambda: {t.value: NotificationCounts() for t in NotificationType}
    )
    listings_synced: int = 0

    def record(self, notification_type: NotificationType, outcome: str) -> None:
        counts = self.notifications[notification_type.value]
        setattr(counts, outcome, getattr(counts, outcome) + 1)


@dataclass
class _Notification:
    account_id: str
    notification_type: NotificationType
    period: str
    data: dict[str, Any] = field(default_factory=dict)


def iso_week(moment: datetime) -> str:
    """Period key such as '2026-W07'."""
    year, week, _ = moment.isocalendar()
    return f"{year}-W{week:02d}"


def _validity_data(entitlement: Entitlement) -> dict[str, Any]:
    return {
        "plan": entitlement.plan.value,
        "valid_until": entitlement.valid_until.isoformat(),
    }


class ReconciliationScanner:
    """One logical pass over entitlements and listings."""

    def __init__(
        self,
        repo: Optional[EntitlementRepository] = None,
        log_repo: Optional[NotificationLogRepository] = None,
        notifier: Optional[Notifier] = None,
    ):
        settings = get_settings()
        self._repo = repo or get_entitlement_repository()
        self._log = log_repo or get_notification_log_repository()
        self._notifier = notifier or get_notifier()
        self._lookahead = timedelta(days=settings.renewal_lookahead_days)
        self._lookback = timedelta(days=settings.trial_ended_lookback_days)
        self._window_days = settings.freshness_window_days
        self._concurrency = settings.reconcile_concurrency

    async def run(self, now: Optional[datetime] = None) -> ReconciliationReport:
        """Run every check once and dispatch the resulting notifications."""
        now = now or utcnow()
        report = ReconciliationReport(started_at=now)

        pending: list[_Notification] = []
        pending += await self._renewal_reminders(now)
        pending += await self._trials_ending(now)
        pending += await self._trials_ended(now)
        pending += await self._refresh_notifications(now)

        await self._dispatch(pending, report)

        async with get_session_context() as session:
            report.listings_synced = await ListingRepository(session).sync_refresh_status(
                stale_before(now, self._window_days)
            )

        report.finished_at = utcnow()
        logger.info(
            f"Reconciliation finished: {len(pending)} candidates, "
            f"{report.listings_synced} listing statuses synced"
        )
        return report

    # =========================================================================
    # Checks
    # =========================================================================

    async def _renewal_reminders(self, now: datetime) -> list[_Notification]:
        due = await self._repo.find_renewal_candidates(now, now + self._lookahead)
        return [
            _Notification(
                e.account_id,
                NotificationType.RENEWAL_REMINDER,
                e.valid_until.date().isoformat(),
                _validity_data(e),
            )
            for e in due
        ]

    async def _trials_ending(self, now: datetime) -> list[_Notification]:
        ending = await self._repo.find_trials_ending(now, now + self._lookahead)
        return [
            _Notification(
                e.account_id,
                NotificationType.TRIAL_ENDING,
                e.valid_until.date().isoformat(),
                _validity_data(e),
            )
            for e in ending
        ]

    async def _trials_ended(self, now: datetime) -> list[_Notification]:
        lapsed = await self._repo.find_lapsed_trials(now - self._lookback, now)
        return [
            _Notification(
                e.account_id,
                NotificationType.TRIAL_ENDED,
                e.valid_until.date().isoformat(),
                _validity_data(e),
            )
            for e in lapsed
        ]

    async def _refresh_notifications(self, now: datetime) -> list[_Notification]:
        """One batched notification per owner of stale approved listings."""
        async with get_session_context() as session:
            stale = await ListingRepository(session).find_stale_approved(
                stale_before(now, self._window_days)
            )

        by_owner: dict[str, list] = defaultdict(list)
        for listing in stale:
            by_owner[listing.owner_account_id].append(listing)

        entitlements = await self._repo.get_many(list(by_owner))
        period = iso_week(now)

        notifications = []
        for owner, listings in by_owner.items():
            included = refresh_included(entitlements.get(owner), now)
            notifications.append(_Notification(
                owner,
                NotificationType.REFRESH_INCLUDED if included else NotificationType.REFRESH_NEEDED,
                period,
                {
                    "listings": [
                        {"id": listing.id, "url": listing.url} for listing in listings
                    ],
                },
            ))
        return notifications

    # =========================================================================
    # Delivery
    # =========================================================================

    async def _dispatch(
        self, pending: list[_Notification], report: ReconciliationReport
    ) -> None:
        """Accounts run in parallel up to the concurrency bound; one account's sends run in order."""
        by_account: dict[str, list[_Notification]] = defaultdict(list)
        for notification in pending:
            by_account[notification.account_id].append(notification)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def run_account(notifications: list[_Notification]) -> None:
            async with semaphore:
                for notification in notifications:
                    outcome = await self._deliver(notification)
                    report.record(notification.notification_type, outcome)

        await asyncio.gather(*(run_account(batch) for batch in by_account.values()))

    async def _deliver(self, notification: _Notification) -> str:
        kind = notification.notification_type.value
        try:
            claimed = await self._log.claim(
                notification.account_id,
                kind,
                notification.period,
                payload=notification.data,
            )
            if not claimed:
                return "skipped"

            if await self._send(notification):
                return "sent"

            await self._log.release(notification.account_id, kind, notification.period)
        except SQLAlchemyError as e:
            logger.error(
                f"Could not deliver {kind} to {notification.account_id} "
                f"({notification.period}): {e}"
            )
        return "failed"

    async def _send(self, notification: _Notification) -> bool:
        kind = notification.notification_type.value
        try:
            return await self._notifier.notify(notification.account_id, kind, notification.data)
        except Exception as e:
            # Any notifier failure releases the claim so the next run retries
            logger.exception(f"Notifier raised on {kind} to {notification.account_id}: {e}")
            return False


_scanner_instance: Optional[ReconciliationScanner] = None


def get_reconciliation_scanner() -> ReconciliationScanner:
    """Get or create reconciliation scanner singleton."""
    global _scanner_instance

    if _scanner_instance is None:
        _scanner_instance = ReconciliationScanner()

    return _scanner_instance
