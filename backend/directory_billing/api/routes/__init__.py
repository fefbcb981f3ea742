# API Routes Module
from directory_billing.api.routes import (
    admin,
    checkout,
    entitlements,
    jobs,
    listings,
    webhooks,
)

__all__ = [
    "admin",
    "checkout",
    "entitlements",
    "jobs",
    "listings",
    "webhooks",
]
