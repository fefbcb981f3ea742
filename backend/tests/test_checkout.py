"""
Tests for checkout initiation.

Stripe is mocked; the Entitlement Store is real so customer ref
convergence is exercised against the actual upsert.
"""

from unittest.mock import AsyncMock, patch

import pytest

from directory_billing.domain.billing_events import PurchaseType
from directory_billing.domain.checkout import CheckoutResponse
from directory_billing.domain.entitlement import EntitlementPatch, PaymentStatus
from directory_billing.infrastructure.db.database import get_session_context
from directory_billing.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
)
from directory_billing.infrastructure.db.repositories.listing_repository import ListingRepository
from directory_billing.infrastructure.exceptions import (
    AuthorizationError,
    NotFoundError,
    ProviderUnreachableError,
    ValidationError,
)
from directory_billing.infrastructure.services.checkout_initiator import CheckoutInitiator


@pytest.fixture
def repo(db):
    return EntitlementRepository()


@pytest.fixture
def initiator(mock_stripe_service, repo):
    return CheckoutInitiator(stripe_service=mock_stripe_service, repo=repo)


async def _create_listing(owner: str) -> str:
    async with get_session_context() as session:
        listing = await ListingRepository(session).create(owner, "https://example.com")
    return listing.id


class TestCustomerResolution:

    async def test_creates_and_stores_customer(self, initiator, mock_stripe_service, repo):
        response = await initiator.initiate("acct_1", PurchaseType.SUBSCRIPTION_PRO)

        assert response.redirect_url == "https://checkout.stripe.test/cs_test_123"
        mock_stripe_service.create_customer.assert_awaited_once_with("acct_1")

        stored = await repo.get("acct_1")
        assert stored.billing_customer_ref == "cus_new"

    async def test_reuses_stored_customer(self, initiator, mock_stripe_service, repo):
        await repo.upsert("acct_1", EntitlementPatch(billing_customer_ref="cus_existing"))

        await initiator.initiate("acct_1", PurchaseType.SUBSCRIPTION_AGENCY)

        mock_stripe_service.create_customer.assert_not_awaited()
        kwargs = mock_stripe_service.create_checkout_session.await_args.kwargs
        assert kwargs["customer_id"] == "cus_existing"

    async def test_concurrent_initiation_converges_on_first_ref(
        self, initiator, mock_stripe_service, repo
    ):
        async def racing_create(account_id):
            await repo.claim_customer_ref(account_id, "cus_first")
            return "cus_second"

        mock_stripe_service.create_customer = AsyncMock(side_effect=racing_create)

        await initiator.initiate("acct_1", PurchaseType.SUBSCRIPTION_PRO)

        kwargs = mock_stripe_service.create_checkout_session.await_args.kwargs
        assert kwargs["customer_id"] == "cus_first"
        assert (await repo.get("acct_1")).billing_customer_ref == "cus_first"

    async def test_never_marks_paid(self, initiator, repo):
        await initiator.initiate("acct_1", PurchaseType.SUBSCRIPTION_PRO)

        stored = await repo.get("acct_1")
        assert stored.payment_status == PaymentStatus.NONE


class TestSessionParameters:

    async def test_subscription_metadata(self, initiator, mock_stripe_service):
        await initiator.initiate("acct_1", PurchaseType.SUBSCRIPTION_AGENCY)

        kwargs = mock_stripe_service.create_checkout_session.await_args.kwargs
        assert kwargs["metadata"] == {
            "account_id": "acct_1",
            "purchase_type": "subscription_agency",
            "plan": "agency",
        }
        assert kwargs["price_id"] == "price_subscription_agency"
        assert kwargs["purchase_type"] == PurchaseType.SUBSCRIPTION_AGENCY

    async def test_explicit_price_ref_wins(self, initiator, mock_stripe_service):
        await initiator.initiate("acct_1", PurchaseType.SUBSCRIPTION_PRO, price_ref="price_custom")

        kwargs = mock_stripe_service.create_checkout_session.await_args.kwargs
        assert kwargs["price_id"] == "price_custom"

    async def test_boost_carries_listing(self, initiator, mock_stripe_service):
        listing_id = await _create_listing("acct_1")

        await initiator.initiate("acct_1", PurchaseType.BOOST, listing_id=listing_id)

        kwargs = mock_stripe_service.create_checkout_session.await_args.kwargs
        assert kwargs["metadata"]["listing_id"] == listing_id
        assert "plan" not in kwargs["metadata"]


class TestValidation:

    async def test_boost_requires_listing(self, initiator, mock_stripe_service):
        with pytest.raises(ValidationError):
            await initiator.initiate("acct_1", PurchaseType.BOOST)

        mock_stripe_service.create_customer.assert_not_awaited()

    async def test_unknown_listing(self, initiator):
        with pytest.raises(NotFoundError):
            await initiator.initiate(
                "acct_1", PurchaseType.REFRESH,
                listing_id="00000000-0000-0000-0000-000000000000",
            )

    async def test_foreign_listing(self, initiator, mock_stripe_service):
        listing_id = await _create_listing("acct_other")

        with pytest.raises(AuthorizationError):
            await initiator.initiate("acct_1", PurchaseType.BOOST, listing_id=listing_id)

        mock_stripe_service.create_checkout_session.assert_not_awaited()

    async def test_provider_unreachable_propagates(self, initiator, mock_stripe_service, repo):
        mock_stripe_service.create_checkout_session = AsyncMock(
            side_effect=ProviderUnreachableError("Stripe unreachable")
        )

        with pytest.raises(ProviderUnreachableError):
            await initiator.initiate("acct_1", PurchaseType.SUBSCRIPTION_PRO)

        assert (await repo.get("acct_1")).payment_status == PaymentStatus.NONE


class TestCheckoutEndpoint:

    async def test_requires_auth(self, async_client):
        response = await async_client.post(
            "/api/checkout",
            json={"accountId": "acct_1", "purchaseType": "subscription_pro"},
        )
        assert response.status_code == 401

    async def test_account_mismatch_forbidden(self, async_client, auth_headers):
        response = await async_client.post(
            "/api/checkout",
            json={"accountId": "acct_other", "purchaseType": "subscription_pro"},
            headers=auth_headers("acct_1"),
        )
        assert response.status_code == 403

    async def test_returns_redirect_url(self, async_client, auth_headers):
        initiator = AsyncMock()
        initiator.initiate = AsyncMock(return_value=CheckoutResponse(
            redirect_url="https://checkout.stripe.test/cs_1", session_id="cs_1"
        ))

        with patch(
            "directory_billing.api.routes.checkout.get_checkout_initiator",
            return_value=initiator,
        ):
            response = await async_client.post(
                "/api/checkout",
                json={"accountId": "acct_1", "purchaseType": "subscription_pro"},
                headers=auth_headers("acct_1"),
            )

        assert response.status_code == 200
        assert response.json()["redirectUrl"] == "https://checkout.stripe.test/cs_1"
        initiator.initiate.assert_awaited_once()

    async def test_provider_unreachable_maps_to_503(self, async_client, auth_headers):
        initiator = AsyncMock()
        initiator.initiate = AsyncMock(side_effect=ProviderUnreachableError("down"))

        with patch(
            "directory_billing.api.routes.checkout.get_checkout_initiator",
            return_value=initiator,
        ):
            response = await async_client.post(
                "/api/checkout",
                json={"accountId": "acct_1", "purchaseType": "subscription_pro"},
                headers=auth_headers("acct_1"),
            )

        assert response.status_code == 503
