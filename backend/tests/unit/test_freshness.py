"""
Unit tests for listing freshness.
"""

from datetime import datetime, timedelta, timezone

from directory_billing.domain.entitlement import Entitlement, FeatureFlag, Plan
from directory_billing.domain.freshness import refresh_included, refresh_status, stale_before
from directory_billing.domain.listing import RefreshStatus


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class TestRefreshStatus:

    def test_refreshed_89_days_ago_is_fresh(self):
        assert refresh_status(NOW - timedelta(days=89), NOW) == RefreshStatus.FRESH

    def test_refreshed_90_days_ago_is_stale(self):
        assert refresh_status(NOW - timedelta(days=90), NOW) == RefreshStatus.STALE

    def test_just_inside_window_is_fresh(self):
        last = NOW - timedelta(days=90) + timedelta(seconds=1)
        assert refresh_status(last, NOW) == RefreshStatus.FRESH

    def test_never_refreshed_is_stale(self):
        assert refresh_status(None, NOW) == RefreshStatus.STALE

    def test_naive_timestamps_are_treated_as_utc(self):
        last = (NOW - timedelta(days=10)).replace(tzinfo=None)
        assert refresh_status(last, NOW) == RefreshStatus.FRESH

    def test_custom_window(self):
        last = NOW - timedelta(days=31)
        assert refresh_status(last, NOW, window_days=30) == RefreshStatus.STALE
        assert refresh_status(last, NOW, window_days=60) == RefreshStatus.FRESH

    def test_stale_before_matches_refresh_status(self):
        cutoff = stale_before(NOW)
        assert refresh_status(cutoff, NOW) == RefreshStatus.STALE
        assert refresh_status(cutoff + timedelta(microseconds=1), NOW) == RefreshStatus.FRESH


class TestRefreshIncluded:

    def _entitlement(self, flags, valid_until):
        return Entitlement(
            account_id="acct_1",
            plan=Plan.AGENCY,
            quota=999,
            valid_from=NOW - timedelta(days=30),
            valid_until=valid_until,
            feature_flags=flags,
        )

    def test_active_agency_includes_refresh(self):
        entitlement = self._entitlement(
            {FeatureFlag.RECURRING_REFRESH}, NOW + timedelta(days=10)
        )
        assert refresh_included(entitlement, NOW) is True

    def test_lapsed_agency_does_not(self):
        entitlement = self._entitlement({FeatureFlag.RECURRING_REFRESH}, NOW)
        assert refresh_included(entitlement, NOW) is False

    def test_pro_without_flag_does_not(self):
        entitlement = self._entitlement(
            {FeatureFlag.ADVANCED_ANALYSIS}, NOW + timedelta(days=10)
        )
        assert refresh_included(entitlement, NOW) is False

    def test_no_entitlement(self):
        assert refresh_included(None, NOW) is False
