"""
Application services: trial activation, checkout, webhook processing,
reconciliation, admin overrides and listing submission.
"""

from directory_billing.infrastructure.services.admin_overrides import (
    AdminOverrides,
    get_admin_overrides,
)
from directory_billing.infrastructure.services.checkout_initiator import (
    CheckoutInitiator,
    get_checkout_initiator,
)
from directory_billing.infrastructure.services.listing_service import ListingService
from directory_billing.infrastructure.services.reconciliation_scanner import (
    NotificationType,
    ReconciliationReport,
    ReconciliationScanner,
    get_reconciliation_scanner,
)
from directory_billing.infrastructure.services.trial_activator import (
    TrialActivator,
    get_trial_activator,
)
from directory_billing.infrastructure.services.webhook_processor import (
    WebhookProcessor,
    get_webhook_processor,
)

__all__ = [
    "AdminOverrides",
    "CheckoutInitiator",
    "ListingService",
    "NotificationType",
    "ReconciliationReport",
    "ReconciliationScanner",
    "TrialActivator",
    "WebhookProcessor",
    "get_admin_overrides",
    "get_checkout_initiator",
    "get_reconciliation_scanner",
    "get_trial_activator",
    "get_webhook_processor",
]
