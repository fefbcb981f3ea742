"""
Webhook Event Processor

The only component that marks an entitlement active from a real payment.

Pipeline per delivery:
1. Verify the Stripe signature (nothing is read before this)
2. Normalize the payload into a BillingEvent
3. Short-circuit event ids already recorded as processed
4. Correlate to an account: subscription ref, customer ref, then the
   account_id carried in metadata
5. Compute the transition and write it through the Entitlement Store
6. Record the event id as processed

Any exception escaping process() must turn into a non-2xx response so
Stripe redelivers; every transition is safe to replay.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError

from directory_billing.config.settings import get_settings
from directory_billing.domain.billing_events import (
    BillingEvent,
    BillingEventType,
    parse_stripe_event,
)
from directory_billing.domain.entitlement import utcnow
from directory_billing.domain.transitions import listing_effect, plan_transition
from directory_billing.infrastructure.db.database import get_session_context
from directory_billing.infrastructure.db.repositories.audit_repository import (
    AuditRepository,
    get_audit_repository,
)
from directory_billing.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
    get_entitlement_repository,
)
from directory_billing.infrastructure.db.repositories.listing_repository import ListingRepository
from directory_billing.infrastructure.db.repositories.webhook_event_repository import (
    is_event_processed,
    mark_event_processed,
)
from directory_billing.infrastructure.exceptions import (
    CorrelationNotFoundError,
    StoreWriteFailedError,
    ValidationError,
)
from directory_billing.infrastructure.payments.stripe_service import (
    StripeService,
    get_stripe_service,
)


logger = logging.getLogger(__name__)

# Events whose effect needs the subscription fetched from Stripe
_FETCH_SUBSCRIPTION = (
    BillingEventType.PAYMENT_SUCCEEDED,
    BillingEventType.CHECKOUT_SUBSCRIPTION,
)


class WebhookProcessor:
    """Applies verified Stripe events to entitlements and listings."""

    def __init__(
        self,
        stripe_service: Optional[StripeService] = None,
        repo: Optional[EntitlementRepository] = None,
        audit_repo: Optional[AuditRepository] = None,
    ):
        settings = get_settings()
        self._stripe = stripe_service or get_stripe_service()
        self._repo = repo or get_entitlement_repository()
        self._audit = audit_repo or get_audit_repository()
        self._grace = timedelta(hours=settings.payment_failed_grace_hours)
        self._boost_days = settings.boost_days

    async def process(
        self,
        payload: bytes,
        signature: Optional[str],
        now: Optional[datetime] = None,
    ) -> dict[str, Any]:
        """
        Handle one webhook delivery.

        Returns:
            {"status": ..., "event_id": ..., "event_type": ...}

        Raises:
            SignatureInvalidError: reject without touching state
            ValidationError: signed payload is not a Stripe event
            StoreWriteFailedError, ProviderUnreachableError: retry later
        """
        data = self._stripe.verify_webhook_signature(payload, signature)

        try:
            event = parse_stripe_event(data)
        except (KeyError, TypeError, AttributeError, PydanticValidationError) as e:
            raise ValidationError("Malformed webhook event", original_error=e)

        result = {"event_id": event.event_id, "event_type": event.provider_type}

        if await is_event_processed(event.event_id):
            logger.info(f"Event {event.event_id} already processed, skipping")
            return {"status": "already_processed", **result}

        logger.info(f"Processing webhook: {event.provider_type} ({event.event_id})")

        if event.kind == BillingEventType.IGNORED:
            logger.debug(f"Unhandled event type: {event.provider_type}")
            status = "ignored"
        elif event.kind == BillingEventType.CHECKOUT_ONE_TIME:
            status = await self._apply_one_time(event)
        else:
            status = await self._apply_subscription_event(event, now or utcnow())

        await mark_event_processed(event.event_id, event.provider_type)
        return {"status": status, **result}

    # =========================================================================
    # Subscription lifecycle
    # =========================================================================

    async def _apply_subscription_event(self, event: BillingEvent, now: datetime) -> str:
        if not event.subscription_ref:
            logger.warning(
                f"{event.provider_type} {event.event_id} carries no subscription, ignoring"
            )
            return "ignored"

        subscription = None
        if event.kind in _FETCH_SUBSCRIPTION:
            subscription = await self._stripe.get_subscription(event.subscription_ref)
            if subscription is None:
                logger.warning(
                    f"Subscription {event.subscription_ref} for event {event.event_id} "
                    f"no longer exists, ignoring"
                )
                return "ignored"

        account_hint = event.account_id or (subscription.account_id if subscription else None)
        current = await self._repo.resolve(
            subscription_ref=event.subscription_ref,
            customer_ref=event.customer_ref,
            account_id=account_hint,
        )

        if current is None and not account_hint:
            error = CorrelationNotFoundError(
                subscription_ref=event.subscription_ref,
                customer_ref=event.customer_ref,
            )
            logger.warning(f"Event {event.event_id}: {error.message} {error.details}")
            return "uncorrelated"

        account_id = current.account_id if current else account_hint
        patch = plan_transition(
            current,
            event,
            now,
            subscription=subscription,
            payment_failed_grace=self._grace,
        )
        if patch is None:
            logger.info(f"Event {event.event_id} is a no-op for account {account_id}")
            return "no_op"

        updated = await self._repo.upsert(account_id, patch, now=now)
        logger.info(
            f"Account {account_id}: {event.kind.value} -> plan={updated.plan.value}, "
            f"payment_status={updated.payment_status.value}, "
            f"valid_until={updated.valid_until.isoformat()}"
        )
        return "processed"

    # =========================================================================
    # One-time purchases
    # =========================================================================

    async def _apply_one_time(self, event: BillingEvent) -> str:
        if event.purchase_type is None:
            logger.warning(f"Checkout {event.event_id} has no purchase type, ignoring")
            return "ignored"

        account_id = event.account_id
        if account_id is None and event.customer_ref:
            owner = await self._repo.get_by_customer_ref(event.customer_ref)
            account_id = owner.account_id if owner else None
        if account_id is None:
            logger.error(
                f"Paid {event.purchase_type.value} checkout {event.event_id} has no "
                f"account; needs manual reconciliation"
            )
            return "uncorrelated"

        effect = listing_effect(event, boost_days=self._boost_days)
        if effect is None:
            logger.info(
                f"Recorded {event.purchase_type.value} purchase for account {account_id}"
            )
            return "processed"

        if not event.listing_id:
            return await self._credit(event, account_id, "listing_missing")

        try:
            async with get_session_context() as session:
                listings = ListingRepository(session)
                listing = await listings.get(event.listing_id)
                if listing is not None and listing.owner_account_id == account_id:
                    await listings.apply_effect(event.listing_id, effect)
        except SQLAlchemyError as e:
            logger.error(
                f"Listing effect for {event.event_id} failed on listing "
                f"{event.listing_id}; needs manual reconciliation: {e}"
            )
            raise StoreWriteFailedError(
                "Listing write failed",
                operation="apply_effect",
                table="listings",
                original_error=e,
            )

        if listing is None:
            return await self._credit(event, account_id, "listing_missing")
        if listing.owner_account_id != account_id:
            return await self._credit(event, account_id, "listing_not_owned")

        logger.info(
            f"Applied {event.purchase_type.value} to listing {event.listing_id} "
            f"for account {account_id}"
        )
        return "processed"

    async def _credit(self, event: BillingEvent, account_id: str, reason: str) -> str:
        try:
            created = await self._audit.record_purchase_credit(
                event_id=event.event_id,
                account_id=account_id,
                purchase_type=event.purchase_type.value,
                listing_id=event.listing_id,
                reason=reason,
            )
        except SQLAlchemyError as e:
            raise StoreWriteFailedError(
                "Purchase credit write failed",
                operation="record_purchase_credit",
                table="purchase_credits",
                original_error=e,
            )

        if created:
            logger.warning(
                f"Credited {event.purchase_type.value} to account {account_id} "
                f"({reason}, listing {event.listing_id})"
            )
        return "credited"


_webhook_processor_instance: Optional[WebhookProcessor] = None


def get_webhook_processor() -> WebhookProcessor:
    """Get or create webhook processor singleton."""
    global _webhook_processor_instance

    if _webhook_processor_instance is None:
        _webhook_processor_instance = WebhookProcessor()

    return _webhook_processor_instance
