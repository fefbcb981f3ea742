"""
Stripe Payment Service

Infrastructure service for the payment provider: customers, hosted
checkout sessions, subscription lookups and webhook signature checks.
Stripe errors are translated into the BillingProviderError family so
callers never handle provider types.
"""

import json
import logging
from typing import Any, Mapping, Optional

import stripe
from stripe import StripeError

from directory_billing.config.settings import get_settings
from directory_billing.domain.billing_events import (
    ProviderSubscription,
    PurchaseType,
    ref_id,
    subscription_period_end,
)
from directory_billing.infrastructure.exceptions import (
    BillingProviderError,
    ProviderUnreachableError,
    SignatureInvalidError,
)


logger = logging.getLogger(__name__)

# Provider failures worth retrying: network, 5xx, rate limiting
_TRANSIENT_ERRORS = (stripe.APIConnectionError, stripe.APIError, stripe.RateLimitError)


def _provider_error(operation: str, error: StripeError) -> BillingProviderError:
    message = getattr(error, "user_message", None) or str(error)
    if isinstance(error, _TRANSIENT_ERRORS):
        return ProviderUnreachableError(
            f"Payment provider unreachable during {operation}: {message}",
            operation=operation,
            original_error=error,
        )
    return BillingProviderError(
        f"Payment provider rejected {operation}: {message}",
        operation=operation,
        original_error=error,
    )


def _as_mapping(obj: Any) -> Mapping[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


class StripeService:
    """
    Stripe payment processing service.

    All methods are stateless; idempotency lives in the callers.
    """

    def __init__(self):
        """Initialize Stripe with API key from settings."""
        settings = get_settings()
        self._webhook_secret = settings.stripe_webhook_secret
        self._webhook_tolerance = settings.stripe_webhook_tolerance_seconds
        stripe.api_key = settings.stripe_secret_key

        self._price_map = {
            PurchaseType.SUBSCRIPTION_PRO: settings.stripe_price_pro,
            PurchaseType.SUBSCRIPTION_AGENCY: settings.stripe_price_agency,
            PurchaseType.BOOST: settings.stripe_price_boost,
            PurchaseType.REFRESH: settings.stripe_price_refresh,
            PurchaseType.METADATA: settings.stripe_price_metadata,
        }

    def default_price(self, purchase_type: PurchaseType) -> str:
        """Configured price ref for a purchase type."""
        return self._price_map[purchase_type]

    # =========================================================================
    # Customer Management
    # =========================================================================

    async def create_customer(self, account_id: str) -> str:
        """
        Create a new Stripe customer.

        Args:
            account_id: Internal account id (stored in metadata)

        Returns:
            Stripe customer id
        """
        try:
            customer = await stripe.Customer.create_async(
                metadata={
                    "account_id": account_id,
                    "source": "directory_billing",
                },
            )
        except StripeError as e:
            logger.error(f"Failed to create Stripe customer for {account_id}: {e}")
            raise _provider_error("create_customer", e)

        logger.info(f"Created Stripe customer {customer.id} for account {account_id}")
        return customer.id

    # =========================================================================
    # Checkout Session
    # =========================================================================

    async def create_checkout_session(
        self,
        customer_id: str,
        price_id: str,
        purchase_type: PurchaseType,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> tuple[str, str]:
        """
        Create a hosted Checkout Session.

        Subscriptions also carry the metadata on the subscription itself so
        renewal invoices can be correlated later.

        Returns:
            (session_id, redirect_url)
        """
        params: dict[str, Any] = {
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "mode": "subscription" if purchase_type.is_subscription else "payment",
            "success_url": f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": cancel_url,
            "client_reference_id": metadata.get("account_id"),
            "metadata": metadata,
        }
        if purchase_type.is_subscription:
            params["allow_promotion_codes"] = True
            params["subscription_data"] = {
                "metadata": {
                    "account_id": metadata["account_id"],
                    "plan": metadata["plan"],
                },
            }

        try:
            session = await stripe.checkout.Session.create_async(**params)
        except StripeError as e:
            logger.error(f"Failed to create checkout session: {e}")
            raise _provider_error("create_checkout_session", e)

        logger.info(
            f"Created checkout session {session.id} for account "
            f"{metadata.get('account_id')}, purchase_type={purchase_type.value}"
        )
        return session.id, session.url

    # =========================================================================
    # Subscription Queries
    # =========================================================================

    async def get_subscription(self, subscription_id: str) -> Optional[ProviderSubscription]:
        """
        Retrieve a subscription by ID.

        Returns:
            ProviderSubscription, or None if Stripe has no such subscription

        Raises:
            ProviderUnreachableError: Stripe could not be reached
        """
        try:
            subscription = await stripe.Subscription.retrieve_async(subscription_id)
        except stripe.InvalidRequestError as e:
            logger.warning(f"Subscription {subscription_id} not found: {e}")
            return None
        except StripeError as e:
            raise _provider_error("get_subscription", e)

        data = _as_mapping(subscription)
        return ProviderSubscription(
            id=data["id"],
            customer_ref=ref_id(data.get("customer")),
            status=data.get("status"),
            period_end=subscription_period_end(data),
            metadata={
                str(k): str(v) for k, v in (data.get("metadata") or {}).items() if v
            },
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> dict:
        """
        Verify webhook signature and decode the event.

        Args:
            payload: Raw request body
            signature: Stripe-Signature header

        Returns:
            Decoded event payload

        Raises:
            SignatureInvalidError: header missing, stale, or not matching
        """
        if not signature:
            raise SignatureInvalidError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._webhook_secret,
                self._webhook_tolerance,
            )
            return json.loads(body)
        except stripe.SignatureVerificationError as e:
            raise SignatureInvalidError(f"Invalid signature: {e}")
        except ValueError as e:
            raise SignatureInvalidError(f"Invalid payload: {e}")


# =============================================================================
# Singleton Instance (Dependency Injection Ready)
# =============================================================================

_stripe_service_instance: Optional[StripeService] = None


def get_stripe_service() -> StripeService:
    """Get or create Stripe service singleton."""
    global _stripe_service_instance

    if _stripe_service_instance is None:
        _stripe_service_instance = StripeService()

    return _stripe_service_instance
