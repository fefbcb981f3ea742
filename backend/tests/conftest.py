"""
Test configuration and fixtures for the Directory Billing backend.

Environment is set before any application import because settings are
validated once at import time. Every test that touches the store gets a
fresh in-memory SQLite database so the real ON CONFLICT upserts run.
"""

import hashlib
import hmac
import json
import os
import time
from datetime import datetime, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_directory_billing"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_directory_billing"
os.environ["AUTH_JWT_SECRET"] = "test-jwt-secret-for-directory-billing-0123456789"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["NOTIFIER_BACKEND"] = "log"

import jwt
import pytest
from httpx import ASGITransport, AsyncClient


TEST_WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]
TEST_JWT_SECRET = os.environ["AUTH_JWT_SECRET"]
TEST_CRON_SECRET = os.environ["CRON_SECRET"]

NOW = datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture
async def db():
    """Fresh in-memory database installed as the global manager."""
    from directory_billing.infrastructure.db import database

    manager = database.DatabaseManager()
    database._db_manager = manager
    await manager.create_tables()

    yield manager

    await manager.close()
    database._db_manager = None


# =============================================================================
# App Fixtures
# =============================================================================

@pytest.fixture
def app():
    """Get the FastAPI application."""
    from directory_billing.main import app
    return app


@pytest.fixture
async def async_client(app, db) -> AsyncGenerator[AsyncClient, None]:
    """Get async test client backed by the test database."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# =============================================================================
# Auth Fixtures
# =============================================================================

def _make_token(account_id: str, expires_in: int = 3600, secret: str = TEST_JWT_SECRET) -> str:
    now = int(time.time())
    return jwt.encode(
        {
            "sub": account_id,
            "aud": "authenticated",
            "iat": now,
            "exp": now + expires_in,
        },
        secret,
        algorithm="HS256",
    )


@pytest.fixture
def make_token():
    return _make_token


@pytest.fixture
def auth_headers():
    """Build Authorization headers for an account."""
    def build(account_id: str) -> dict:
        return {"Authorization": f"Bearer {_make_token(account_id)}"}
    return build


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {TEST_CRON_SECRET}"}


# =============================================================================
# Stripe Fixtures
# =============================================================================

def _sign(payload: str, secret: str = TEST_WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signature}"


@pytest.fixture
def sign_payload():
    """Produce a Stripe-Signature header for a raw payload."""
    return _sign


@pytest.fixture
def stripe_event():
    """Build a Stripe event envelope."""
    def build(event_id: str, event_type: str, obj: dict, created: datetime = NOW) -> dict:
        return {
            "id": event_id,
            "object": "event",
            "type": event_type,
            "created": int(created.timestamp()),
            "data": {"object": obj},
        }
    return build


@pytest.fixture
def signed_delivery(sign_payload):
    """Serialize an event and sign it: returns (payload_bytes, signature)."""
    def build(event: dict) -> tuple[bytes, str]:
        payload = json.dumps(event)
        return payload.encode("utf-8"), sign_payload(payload)
    return build


@pytest.fixture
def mock_stripe_service():
    """Mock for StripeService."""
    mock = MagicMock()
    mock.create_customer = AsyncMock(return_value="cus_new")
    mock.create_checkout_session = AsyncMock(
        return_value=("cs_test_123", "https://checkout.stripe.test/cs_test_123")
    )
    mock.get_subscription = AsyncMock(return_value=None)
    mock.default_price = MagicMock(side_effect=lambda purchase_type: f"price_{purchase_type.value}")
    return mock


# =============================================================================
# Notifier Fixtures
# =============================================================================

@pytest.fixture
def mock_notifier():
    """Mock for Notifier; every send succeeds unless reconfigured."""
    mock = MagicMock()
    mock.notify = AsyncMock(return_value=True)
    return mock
