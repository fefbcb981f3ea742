"""
Entitlement Transition Table

Pure functions of (current entitlement, billing event) -> patch.

Every effect sets absolute timestamps and enum values taken from the
provider, never relative "+1 period" arithmetic, so re-applying an event
lands on the same state. A None result means the event is a no-op for the
entitlement.
"""

from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from directory_billing.domain.billing_events import (
    BillingEvent,
    BillingEventType,
    ProviderSubscription,
    PurchaseType,
)
from directory_billing.domain.entitlement import (
    Entitlement,
    EntitlementPatch,
    EntitlementSource,
    PaymentStatus,
    Plan,
    parse_plan,
    plan_patch,
)
from directory_billing.domain.listing import RefreshStatus

# Provider statuses under which a subscription still grants access
LIVE_SUBSCRIPTION_STATUSES = {"active", "trialing"}


def is_out_of_order(current: Optional[Entitlement], period_end: datetime) -> bool:
    """An older period end must not overwrite a newer active one."""
    return (
        current is not None
        and current.payment_status == PaymentStatus.ACTIVE
        and period_end < current.valid_until
    )


def _resolve_plan(current: Optional[Entitlement], *candidates: Optional[str]) -> Plan:
    for candidate in candidates:
        plan = parse_plan(candidate)
        if plan is not None and plan != Plan.FREE:
            return plan
    if current is not None and current.plan != Plan.FREE:
        return current.plan
    return Plan.PRO


def _activation_patch(
    current: Optional[Entitlement],
    event: BillingEvent,
    plan: Plan,
    period_end: datetime,
    subscription_ref: Optional[str],
    customer_ref: Optional[str],
) -> Optional[EntitlementPatch]:
    if is_out_of_order(current, period_end):
        return None

    fields = {
        "valid_until": period_end,
        "payment_status": PaymentStatus.ACTIVE,
        "source": EntitlementSource.PAID,
        "billing_subscription_ref": subscription_ref,
        "billing_customer_ref": customer_ref,
        "guard_period_end": True,
    }
    if current is None or current.payment_status != PaymentStatus.ACTIVE:
        fields["valid_from"] = event.occurred_at
    return plan_patch(plan, **fields)


def plan_transition(
    current: Optional[Entitlement],
    event: BillingEvent,
    now: datetime,
    subscription: Optional[ProviderSubscription] = None,
    payment_failed_grace: timedelta = timedelta(0),
) -> Optional[EntitlementPatch]:
    """
    Compute the entitlement patch for an event.

    Args:
        current: Stored entitlement, if any
        event: Normalized provider event
        now: Processing time
        subscription: Provider subscription detail, required for
            payment succeeded and subscription checkout events
        payment_failed_grace: Access kept after a failed payment

    Returns:
        EntitlementPatch to apply, or None for a no-op
    """
    kind = event.kind

    if kind in (BillingEventType.PAYMENT_SUCCEEDED, BillingEventType.CHECKOUT_SUBSCRIPTION):
        if subscription is None or subscription.period_end is None:
            return None
        if subscription.status and subscription.status not in LIVE_SUBSCRIPTION_STATUSES:
            return None
        plan = _resolve_plan(current, event.plan, subscription.plan)
        return _activation_patch(
            current,
            event,
            plan,
            subscription.period_end,
            subscription.id,
            subscription.customer_ref or event.customer_ref,
        )

    if kind == BillingEventType.SUBSCRIPTION_UPDATED:
        if event.subscription_status not in LIVE_SUBSCRIPTION_STATUSES or event.period_end is None:
            return None
        plan = _resolve_plan(current, event.plan)
        return _activation_patch(
            current,
            event,
            plan,
            event.period_end,
            event.subscription_ref,
            event.customer_ref,
        )

    if kind == BillingEventType.PAYMENT_FAILED:
        collapse_to = now + payment_failed_grace
        if current is not None:
            stored_ref = current.billing_subscription_ref
            if stored_ref is not None and stored_ref != event.subscription_ref:
                # Failure on another subscription, e.g. a declined upgrade
                return None
            if current.payment_status == PaymentStatus.CANCELED:
                return None
            # Replays keep the first collapse instead of moving it forward
            if current.payment_status == PaymentStatus.PAST_DUE and current.valid_until <= collapse_to:
                return None
        return EntitlementPatch(
            payment_status=PaymentStatus.PAST_DUE,
            valid_until=collapse_to,
            billing_customer_ref=event.customer_ref,
        )

    if kind == BillingEventType.SUBSCRIPTION_DELETED:
        if current is not None:
            stored_ref = current.billing_subscription_ref
            if stored_ref is not None and stored_ref != event.subscription_ref:
                # A newer subscription replaced this one
                return None
            if (
                stored_ref is None
                and current.payment_status == PaymentStatus.CANCELED
                and current.plan == Plan.FREE
            ):
                return None
            collapse_to = min(now, current.valid_until)
        else:
            collapse_to = now
        return plan_patch(
            Plan.FREE,
            payment_status=PaymentStatus.CANCELED,
            valid_until=collapse_to,
            billing_customer_ref=event.customer_ref,
            clear_subscription_ref=True,
        )

    return None


# =============================================================================
# One-time purchases (scoped to a Listing, not the Entitlement)
# =============================================================================

class ListingEffect(BaseModel):
    """Column values a one-time purchase writes to a listing."""
    boosted_until: Optional[datetime] = None
    last_refreshed_at: Optional[datetime] = None
    refresh_status: Optional[RefreshStatus] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


def listing_effect(event: BillingEvent, boost_days: int = 30) -> Optional[ListingEffect]:
    """
    Effect of a one-time checkout on its listing, anchored to the event time
    so redelivery writes the same values.
    """
    if event.purchase_type == PurchaseType.BOOST:
        return ListingEffect(boosted_until=event.occurred_at + timedelta(days=boost_days))
    if event.purchase_type == PurchaseType.REFRESH:
        return ListingEffect(
            last_refreshed_at=event.occurred_at,
            refresh_status=RefreshStatus.FRESH,
        )
    return None
