"""
Entitlement Domain Models

Domain models for the entitlement bounded context.
Enums, the Entitlement entity, write patches, plan catalog and DTOs.
"""

import calendar
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Plan(str, Enum):
    """Plan levels."""
    FREE = "free"
    PRO = "pro"
    AGENCY = "agency"


class PaymentStatus(str, Enum):
    """Provider-reported payment status."""
    NONE = "none"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


class EntitlementSource(str, Enum):
    """Where an entitlement came from. Gift and trial are not revenue."""
    TRIAL = "trial"
    PAID = "paid"
    GIFT = "gift"


class FeatureFlag(str, Enum):
    """Paid features gated by plan."""
    ADVANCED_ANALYSIS = "advanced_analysis"
    RECURRING_REFRESH = "recurring_refresh"
    MULTI_SEAT = "multi_seat"


# =============================================================================
# Domain Entities
# =============================================================================

class Entitlement(BaseModel):
    """Authoritative record of what an account may do, and until when."""
    id: Optional[str] = None
    account_id: str
    plan: Plan = Plan.FREE
    quota: int = 1
    valid_from: datetime
    valid_until: datetime
    billing_customer_ref: Optional[str] = None
    billing_subscription_ref: Optional[str] = None
    payment_status: PaymentStatus = PaymentStatus.NONE
    source: EntitlementSource = EntitlementSource.PAID
    feature_flags: set[FeatureFlag] = Field(default_factory=set)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """An entitlement is active iff now < valid_until."""
        return (now or utcnow()) < self.valid_until

    def has_feature(self, flag: FeatureFlag, now: Optional[datetime] = None) -> bool:
        return self.is_active(now) and flag in self.feature_flags

    def effective_quota(self, now: Optional[datetime] = None) -> int:
        """Quota in force right now; a lapsed entitlement falls back to free."""
        if self.is_active(now):
            return self.quota
        return PLAN_CATALOG[Plan.FREE].quota


class EntitlementPatch(BaseModel):
    """
    Partial update applied through the Entitlement Store.

    Only explicitly set fields are written. Correlation refs set to None
    are ignored; the subscription ref is only cleared when
    clear_subscription_ref is True.

    guard_period_end makes the write conditional: it is skipped when the
    stored row is already active with a later valid_until.
    """
    plan: Optional[Plan] = None
    quota: Optional[int] = None
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    billing_customer_ref: Optional[str] = None
    billing_subscription_ref: Optional[str] = None
    payment_status: Optional[PaymentStatus] = None
    source: Optional[EntitlementSource] = None
    feature_flags: Optional[set[FeatureFlag]] = None

    clear_subscription_ref: bool = Field(default=False, exclude=True)
    guard_period_end: bool = Field(default=False, exclude=True)

    def changes(self) -> dict:
        """Column values this patch writes."""
        values = self.model_dump(exclude_unset=True, exclude_none=True)
        if self.clear_subscription_ref:
            values["billing_subscription_ref"] = None
        return values


# =============================================================================
# Plan Catalog (Business Logic)
# =============================================================================

class PlanLimits(BaseModel):
    quota: int
    feature_flags: frozenset[FeatureFlag] = frozenset()


PLAN_CATALOG: dict[Plan, PlanLimits] = {
    Plan.FREE: PlanLimits(quota=1),
    Plan.PRO: PlanLimits(
        quota=999,
        feature_flags=frozenset({FeatureFlag.ADVANCED_ANALYSIS}),
    ),
    Plan.AGENCY: PlanLimits(
        quota=999,
        feature_flags=frozenset({
            FeatureFlag.ADVANCED_ANALYSIS,
            FeatureFlag.RECURRING_REFRESH,
            FeatureFlag.MULTI_SEAT,
        }),
    ),
}


def plan_patch(plan: Plan, **fields) -> EntitlementPatch:
    """Patch setting plan, quota and feature flags from the catalog."""
    limits = PLAN_CATALOG[plan]
    return EntitlementPatch(
        plan=plan,
        quota=limits.quota,
        feature_flags=set(limits.feature_flags),
        **fields,
    )


def parse_plan(value: Optional[str]) -> Optional[Plan]:
    """Map provider metadata to a plan. Accepts 'pro' or 'subscription_pro'."""
    if not value:
        return None
    value = value.strip().lower()
    if value.startswith("subscription_"):
        value = value[len("subscription_"):]
    try:
        return Plan(value)
    except ValueError:
        return None


# =============================================================================
# Time helpers
# =============================================================================

def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from the store."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamping to the last day of the month."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


# =============================================================================
# Request/Response DTOs
# =============================================================================

class EntitlementStatusResponse(BaseModel):
    """Response DTO for the caller's entitlement."""
    account_id: str
    plan: Plan
    quota: int
    is_active: bool = Field(description="Whether now < valid_until")
    valid_from: datetime
    valid_until: datetime
    payment_status: PaymentStatus
    source: EntitlementSource
    feature_flags: list[FeatureFlag]

    @classmethod
    def from_entitlement(
        cls, entitlement: Entitlement, now: Optional[datetime] = None
    ) -> "EntitlementStatusResponse":
        return cls(
            account_id=entitlement.account_id,
            plan=entitlement.plan,
            quota=entitlement.effective_quota(now),
            is_active=entitlement.is_active(now),
            valid_from=entitlement.valid_from,
            valid_until=entitlement.valid_until,
            payment_status=entitlement.payment_status,
            source=entitlement.source,
            feature_flags=sorted(entitlement.feature_flags, key=lambda f: f.value),
        )


class GrantEntitlementRequest(BaseModel):
    """Request DTO for an administrative grant."""
    model_config = ConfigDict(populate_by_name=True)

    account_id: str = Field(..., alias="accountId", min_length=1)
    plan: Plan
    months: int = Field(..., ge=1, le=12, description="Grant duration in months")


class MarkPaidRequest(BaseModel):
    """Request DTO for marking an entitlement as paid."""
    model_config = ConfigDict(populate_by_name=True)

    entitlement_ref: str = Field(..., alias="entitlementRef", min_length=1)


class EntitlementSummaryResponse(BaseModel):
    """Admin reporting counts."""
    total: int
    active: int
    lapsed: int
    by_plan: dict[str, int]
    by_source: dict[str, int]
    by_payment_status: dict[str, int]
