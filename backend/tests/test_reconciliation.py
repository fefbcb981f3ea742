"""
Tests for the reconciliation scanner.

The notifier is mocked; notification_log claims run against the real
store so at-most-once delivery per period is exercised end to end.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from directory_billing.domain.entitlement import (
    EntitlementPatch,
    EntitlementSource,
    PaymentStatus,
    Plan,
    plan_patch,
)
from directory_billing.infrastructure.db.database import get_session_context
from directory_billing.infrastructure.db.models.listing import ListingModel
from directory_billing.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
)
from directory_billing.infrastructure.db.repositories.listing_repository import ListingRepository
from directory_billing.infrastructure.db.repositories.notification_log_repository import (
    NotificationLogRepository,
)
from directory_billing.infrastructure.exceptions import NotificationFailedError
from directory_billing.infrastructure.services.reconciliation_scanner import (
    NotificationType,
    ReconciliationScanner,
    iso_week,
)


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def repo(db):
    return EntitlementRepository()


@pytest.fixture
def scanner(repo, mock_notifier):
    return ReconciliationScanner(
        repo=repo, log_repo=NotificationLogRepository(), notifier=mock_notifier
    )


async def _add_listing(owner, status="approved", last_refreshed_at=None) -> str:
    async with get_session_context() as session:
        model = ListingModel(
            owner_account_id=owner,
            url=f"https://{owner}.example",
            status=status,
            last_refreshed_at=last_refreshed_at,
        )
        session.add(model)
        await session.flush()
        return str(model.id)


async def _get_listing(listing_id):
    async with get_session_context() as session:
        return await ListingRepository(session).get(listing_id)


def _sent_to(mock_notifier, template_id):
    return [
        call.args[0] for call in mock_notifier.notify.await_args_list
        if call.args[1] == template_id
    ]


class TestRenewalReminders:

    async def _renewing(self, repo, valid_until=NOW + timedelta(days=3)):
        await repo.upsert("acct_1", plan_patch(
            Plan.PRO,
            payment_status=PaymentStatus.ACTIVE,
            valid_until=valid_until,
            billing_subscription_ref="sub_1",
        ), now=NOW)

    async def test_sent_once_per_period(self, scanner, repo, mock_notifier):
        await self._renewing(repo)

        first = await scanner.run(NOW)
        second = await scanner.run(NOW + timedelta(hours=6))

        assert first.notifications["renewal_reminder"].sent == 1
        assert second.notifications["renewal_reminder"].sent == 0
        assert second.notifications["renewal_reminder"].skipped == 1
        assert _sent_to(mock_notifier, "renewal_reminder") == ["acct_1"]

    async def test_outside_lookahead_not_reminded(self, scanner, repo, mock_notifier):
        await self._renewing(repo, valid_until=NOW + timedelta(days=20))

        report = await scanner.run(NOW)

        assert report.notifications["renewal_reminder"].sent == 0
        mock_notifier.notify.assert_not_awaited()

    async def test_failed_send_is_retried_next_run(self, scanner, repo, mock_notifier):
        await self._renewing(repo)
        mock_notifier.notify = AsyncMock(return_value=False)

        failed = await scanner.run(NOW)
        mock_notifier.notify = AsyncMock(return_value=True)
        retried = await scanner.run(NOW)

        assert failed.notifications["renewal_reminder"].failed == 1
        assert retried.notifications["renewal_reminder"].sent == 1

    async def test_notifier_error_releases_claim(self, scanner, repo, mock_notifier):
        await self._renewing(repo)
        mock_notifier.notify = AsyncMock(side_effect=NotificationFailedError("smtp down"))

        failed = await scanner.run(NOW)
        mock_notifier.notify = AsyncMock(return_value=True)
        retried = await scanner.run(NOW)

        assert failed.notifications["renewal_reminder"].failed == 1
        assert retried.notifications["renewal_reminder"].sent == 1

    async def test_unexpected_notifier_error_does_not_abort_run(self, scanner, repo, mock_notifier):
        await self._renewing(repo)
        await repo.upsert("acct_2", plan_patch(
            Plan.PRO,
            payment_status=PaymentStatus.ACTIVE,
            valid_until=NOW + timedelta(days=2),
            billing_subscription_ref="sub_2",
        ), now=NOW)

        async def flaky(account_id, template_id, data):
            if account_id == "acct_1":
                raise RuntimeError("connection reset")
            return True

        mock_notifier.notify = AsyncMock(side_effect=flaky)
        failed = await scanner.run(NOW)
        mock_notifier.notify = AsyncMock(return_value=True)
        retried = await scanner.run(NOW)

        assert failed.notifications["renewal_reminder"].failed == 1
        assert failed.notifications["renewal_reminder"].sent == 1
        assert failed.finished_at is not None
        assert retried.notifications["renewal_reminder"].sent == 1
        assert retried.notifications["renewal_reminder"].skipped == 1
        assert _sent_to(mock_notifier, "renewal_reminder") == ["acct_1"]

    async def test_payment_state_never_changes(self, scanner, repo):
        await self._renewing(repo)
        before = await repo.get("acct_1")

        await scanner.run(NOW)

        after = await repo.get("acct_1")
        assert after.valid_until == before.valid_until
        assert after.payment_status == before.payment_status


class TestTrials:

    async def _trial(self, repo, account_id, valid_until):
        await repo.create_if_absent(account_id, EntitlementPatch(
            source=EntitlementSource.TRIAL, valid_until=valid_until
        ), now=NOW - timedelta(days=90))

    async def test_trial_ending_soon(self, scanner, repo, mock_notifier):
        await self._trial(repo, "acct_1", NOW + timedelta(days=2))

        report = await scanner.run(NOW)

        assert report.notifications["trial_ending"].sent == 1
        assert _sent_to(mock_notifier, "trial_ending") == ["acct_1"]

    async def test_trial_ended_leaves_row_unchanged(self, scanner, repo, mock_notifier):
        await self._trial(repo, "acct_1", NOW - timedelta(days=1))
        before = await repo.get("acct_1")

        report = await scanner.run(NOW)

        assert report.notifications["trial_ended"].sent == 1
        after = await repo.get("acct_1")
        assert after.source == EntitlementSource.TRIAL
        assert after.valid_until == before.valid_until
        assert after.payment_status == before.payment_status

    async def test_old_lapsed_trial_not_notified(self, scanner, repo, mock_notifier):
        await self._trial(repo, "acct_1", NOW - timedelta(days=45))

        report = await scanner.run(NOW)

        assert report.notifications["trial_ended"].sent == 0


class TestRefreshNotifications:

    async def test_batched_per_owner(self, scanner, mock_notifier):
        await _add_listing("acct_1")
        await _add_listing("acct_1", last_refreshed_at=NOW - timedelta(days=120))
        await _add_listing("acct_2", last_refreshed_at=NOW - timedelta(days=90))
        await _add_listing("acct_3", last_refreshed_at=NOW - timedelta(days=10))
        await _add_listing("acct_4", status="pending")

        report = await scanner.run(NOW)

        assert report.notifications["refresh_needed"].sent == 2
        assert sorted(_sent_to(mock_notifier, "refresh_needed")) == ["acct_1", "acct_2"]

        acct_1_call = next(
            call for call in mock_notifier.notify.await_args_list if call.args[0] == "acct_1"
        )
        assert len(acct_1_call.args[2]["listings"]) == 2

    async def test_weekly_period(self, scanner, mock_notifier):
        await _add_listing("acct_1")

        await scanner.run(NOW)
        same_week = await scanner.run(NOW + timedelta(days=1))
        next_week = await scanner.run(NOW + timedelta(days=7))

        assert same_week.notifications["refresh_needed"].skipped == 1
        assert next_week.notifications["refresh_needed"].sent == 1

    async def test_agency_owner_gets_included_variant(self, scanner, repo, mock_notifier):
        await repo.upsert("acct_agency", plan_patch(
            Plan.AGENCY, payment_status=PaymentStatus.ACTIVE, valid_until=NOW + timedelta(days=100)
        ), now=NOW)
        await _add_listing("acct_agency")

        report = await scanner.run(NOW)

        assert report.notifications[NotificationType.REFRESH_INCLUDED.value].sent == 1
        assert report.notifications[NotificationType.REFRESH_NEEDED.value].sent == 0

    async def test_refresh_status_synced(self, scanner):
        stale_id = await _add_listing("acct_1")
        fresh_id = await _add_listing("acct_2", last_refreshed_at=NOW - timedelta(days=5))

        report = await scanner.run(NOW)

        assert report.listings_synced == 2
        assert (await _get_listing(stale_id)).refresh_status.value == "stale"
        assert (await _get_listing(fresh_id)).refresh_status.value == "fresh"

        again = await scanner.run(NOW)
        assert again.listings_synced == 0


class TestIsoWeek:

    def test_format(self):
        assert iso_week(datetime(2026, 2, 12, tzinfo=timezone.utc)) == "2026-W07"

    def test_year_boundary(self):
        assert iso_week(datetime(2027, 1, 1, tzinfo=timezone.utc)) == "2026-W53"
