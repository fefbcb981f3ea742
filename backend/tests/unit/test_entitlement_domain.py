"""
Unit tests for the entitlement domain: activity, patches, plan catalog
and month arithmetic.
"""

from datetime import datetime, timedelta, timezone

import pytest

from directory_billing.domain.entitlement import (
    Entitlement,
    EntitlementPatch,
    EntitlementSource,
    FeatureFlag,
    PaymentStatus,
    Plan,
    PLAN_CATALOG,
    add_months,
    as_utc,
    parse_plan,
    plan_patch,
)


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_entitlement(**overrides) -> Entitlement:
    values = {
        "account_id": "acct_1",
        "plan": Plan.PRO,
        "quota": 999,
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=1),
    }
    values.update(overrides)
    return Entitlement(**values)


class TestEntitlement:

    def test_active_iff_now_before_valid_until(self):
        assert make_entitlement().is_active(NOW) is True
        assert make_entitlement(valid_until=NOW).is_active(NOW) is False

    def test_lapsed_entitlement_falls_back_to_free_quota(self):
        lapsed = make_entitlement(valid_until=NOW - timedelta(seconds=1))
        assert lapsed.effective_quota(NOW) == PLAN_CATALOG[Plan.FREE].quota

    def test_active_entitlement_keeps_quota(self):
        assert make_entitlement().effective_quota(NOW) == 999

    def test_feature_requires_activity(self):
        entitlement = make_entitlement(
            feature_flags={FeatureFlag.ADVANCED_ANALYSIS},
            valid_until=NOW,
        )
        assert entitlement.has_feature(FeatureFlag.ADVANCED_ANALYSIS, NOW) is False


class TestEntitlementPatch:

    def test_changes_only_include_set_fields(self):
        patch = EntitlementPatch(payment_status=PaymentStatus.ACTIVE)
        assert patch.changes() == {"payment_status": PaymentStatus.ACTIVE}

    def test_none_refs_are_not_written(self):
        patch = EntitlementPatch(
            payment_status=PaymentStatus.PAST_DUE,
            billing_subscription_ref=None,
            billing_customer_ref=None,
        )
        assert "billing_subscription_ref" not in patch.changes()
        assert "billing_customer_ref" not in patch.changes()

    def test_explicit_clear_nulls_subscription_ref(self):
        patch = EntitlementPatch(clear_subscription_ref=True)
        assert patch.changes() == {"billing_subscription_ref": None}

    def test_control_flags_are_not_columns(self):
        patch = EntitlementPatch(plan=Plan.PRO, guard_period_end=True)
        assert "guard_period_end" not in patch.changes()


class TestPlanCatalog:

    def test_agency_has_every_flag(self):
        assert PLAN_CATALOG[Plan.AGENCY].feature_flags == frozenset(FeatureFlag)

    def test_plan_patch_copies_catalog(self):
        patch = plan_patch(Plan.PRO, source=EntitlementSource.GIFT)
        assert patch.quota == 999
        assert patch.feature_flags == {FeatureFlag.ADVANCED_ANALYSIS}
        assert patch.source == EntitlementSource.GIFT

    @pytest.mark.parametrize("value,expected", [
        ("pro", Plan.PRO),
        ("subscription_agency", Plan.AGENCY),
        ("AGENCY", Plan.AGENCY),
        ("boost", None),
        (None, None),
    ])
    def test_parse_plan(self, value, expected):
        assert parse_plan(value) == expected


class TestTimeHelpers:

    def test_add_months_clamps_to_month_end(self):
        jan_31 = datetime(2027, 1, 31, 9, 0, tzinfo=timezone.utc)
        assert add_months(jan_31, 1) == datetime(2027, 2, 28, 9, 0, tzinfo=timezone.utc)

    def test_add_months_crosses_year(self):
        assert add_months(NOW, 3) == datetime(2027, 1, 19, 12, 0, tzinfo=timezone.utc)

    def test_add_twelve_months(self):
        assert add_months(NOW, 12) == datetime(2027, 10, 19, 12, 0, tzinfo=timezone.utc)

    def test_as_utc_attaches_timezone(self):
        assert as_utc(datetime(2026, 1, 1)) == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert as_utc(None) is None
