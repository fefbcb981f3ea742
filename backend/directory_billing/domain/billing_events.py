"""
Billing Event Domain Models

Normalizes verified payment-provider (Stripe) event payloads into a
provider-agnostic BillingEvent consumed by the transition table.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field


class BillingEventType(str, Enum):
    """Event kinds the engine reacts to."""
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    CHECKOUT_ONE_TIME = "checkout_one_time"
    CHECKOUT_SUBSCRIPTION = "checkout_subscription"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    IGNORED = "ignored"


class PurchaseType(str, Enum):
    """What a checkout session buys."""
    SUBSCRIPTION_PRO = "subscription_pro"
    SUBSCRIPTION_AGENCY = "subscription_agency"
    BOOST = "boost"
    REFRESH = "refresh"
    METADATA = "metadata"

    @property
    def is_subscription(self) -> bool:
        return self in (PurchaseType.SUBSCRIPTION_PRO, PurchaseType.SUBSCRIPTION_AGENCY)

    @property
    def requires_listing(self) -> bool:
        return self in (PurchaseType.BOOST, PurchaseType.REFRESH)


# Legacy checkout metadata used "llms_txt" for content refresh purchases
_PURCHASE_TYPE_ALIASES = {"llms_txt": PurchaseType.REFRESH}


def parse_purchase_type(value: Optional[str]) -> Optional[PurchaseType]:
    if not value:
        return None
    if value in _PURCHASE_TYPE_ALIASES:
        return _PURCHASE_TYPE_ALIASES[value]
    try:
        return PurchaseType(value)
    except ValueError:
        return None


class BillingEvent(BaseModel):
    """A verified provider event reduced to what the state machine needs."""
    event_id: str
    provider_type: str
    kind: BillingEventType
    occurred_at: datetime
    subscription_ref: Optional[str] = None
    customer_ref: Optional[str] = None
    account_id: Optional[str] = None
    plan: Optional[str] = None
    period_end: Optional[datetime] = None
    subscription_status: Optional[str] = None
    purchase_type: Optional[PurchaseType] = None
    listing_id: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class ProviderSubscription(BaseModel):
    """Subscription detail fetched from the provider."""
    model_config = ConfigDict(frozen=True)

    id: str
    customer_ref: Optional[str] = None
    status: Optional[str] = None
    period_end: Optional[datetime] = None
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def account_id(self) -> Optional[str]:
        return account_id_from(self.metadata)

    @property
    def plan(self) -> Optional[str]:
        return self.metadata.get("plan") or self.metadata.get("purchase_type")


# =============================================================================
# Stripe payload parsing
# =============================================================================

_EVENT_KINDS = {
    "invoice.payment_succeeded": BillingEventType.PAYMENT_SUCCEEDED,
    "invoice.paid": BillingEventType.PAYMENT_SUCCEEDED,
    "invoice.payment_failed": BillingEventType.PAYMENT_FAILED,
    "customer.subscription.updated": BillingEventType.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": BillingEventType.SUBSCRIPTION_DELETED,
}


def from_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def ref_id(value: Any) -> Optional[str]:
    """Stripe expands refs into objects sometimes; return the id either way."""
    if value is None:
        return None
    if isinstance(value, str):
        return value or None
    if isinstance(value, Mapping):
        return value.get("id")
    return None


def account_id_from(metadata: Optional[Mapping[str, Any]]) -> Optional[str]:
    if not metadata:
        return None
    return metadata.get("account_id") or metadata.get("user_id") or None


def _clean_metadata(metadata: Optional[Mapping[str, Any]]) -> dict[str, str]:
    return {str(k): str(v) for k, v in (metadata or {}).items() if v not in (None, "")}


def subscription_period_end(subscription: Mapping[str, Any]) -> Optional[datetime]:
    """Period end from the subscription, or from its first item on newer API versions."""
    period_end = subscription.get("current_period_end")
    if period_end is None:
        items = (subscription.get("items") or {}).get("data") or []
        if items:
            period_end = items[0].get("current_period_end")
    return from_timestamp(period_end)


def _invoice_refs(invoice: Mapping[str, Any]) -> tuple[Optional[str], dict[str, str]]:
    """Subscription id and subscription metadata carried on an invoice."""
    subscription_ref = ref_id(invoice.get("subscription"))
    metadata = _clean_metadata((invoice.get("subscription_details") or {}).get("metadata"))

    details = (invoice.get("parent") or {}).get("subscription_details") or {}
    if not subscription_ref:
        subscription_ref = ref_id(details.get("subscription"))
    if not metadata:
        metadata = _clean_metadata(details.get("metadata"))

    lines = (invoice.get("lines") or {}).get("data") or []
    if lines:
        line = lines[0]
        if not subscription_ref:
            subscription_ref = ref_id(line.get("subscription"))
        if not metadata:
            metadata = _clean_metadata(line.get("metadata"))

    return subscription_ref, metadata


def parse_stripe_event(payload: Mapping[str, Any]) -> BillingEvent:
    """Normalize a verified Stripe event payload."""
    event_id = payload["id"]
    provider_type = payload.get("type", "")
    obj = (payload.get("data") or {}).get("object") or {}
    occurred_at = from_timestamp(payload.get("created")) or datetime.now(timezone.utc)

    base = {
        "event_id": event_id,
        "provider_type": provider_type,
        "occurred_at": occurred_at,
    }

    if provider_type == "checkout.session.completed":
        metadata = _clean_metadata(obj.get("metadata"))
        purchase_type = parse_purchase_type(metadata.get("purchase_type") or metadata.get("type"))
        is_subscription = obj.get("mode") == "subscription"
        return BillingEvent(
            **base,
            kind=(
                BillingEventType.CHECKOUT_SUBSCRIPTION if is_subscription
                else BillingEventType.CHECKOUT_ONE_TIME
            ),
            subscription_ref=ref_id(obj.get("subscription")),
            customer_ref=ref_id(obj.get("customer")),
            account_id=account_id_from(metadata) or obj.get("client_reference_id"),
            plan=metadata.get("plan") or (purchase_type.value if purchase_type else None),
            purchase_type=purchase_type,
            listing_id=metadata.get("listing_id") or metadata.get("link_id"),
            metadata=metadata,
        )

    kind = _EVENT_KINDS.get(provider_type, BillingEventType.IGNORED)

    if kind in (BillingEventType.PAYMENT_SUCCEEDED, BillingEventType.PAYMENT_FAILED):
        subscription_ref, metadata = _invoice_refs(obj)
        return BillingEvent(
            **base,
            kind=kind,
            subscription_ref=subscription_ref,
            customer_ref=ref_id(obj.get("customer")),
            account_id=account_id_from(metadata),
            plan=metadata.get("plan"),
            metadata=metadata,
        )

    if kind in (BillingEventType.SUBSCRIPTION_UPDATED, BillingEventType.SUBSCRIPTION_DELETED):
        metadata = _clean_metadata(obj.get("metadata"))
        return BillingEvent(
            **base,
            kind=kind,
            subscription_ref=ref_id(obj.get("id")),
            customer_ref=ref_id(obj.get("customer")),
            account_id=account_id_from(metadata),
            plan=metadata.get("plan"),
            period_end=subscription_period_end(obj),
            subscription_status=obj.get("status"),
            metadata=metadata,
        )

    return BillingEvent(**base, kind=BillingEventType.IGNORED)
