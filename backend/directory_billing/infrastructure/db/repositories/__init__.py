"""
Repository Layer for the Directory Billing backend

Exports all repository classes and singleton getters.
"""

from directory_billing.infrastructure.db.repositories.base_repository import BaseRepository
from directory_billing.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
    get_entitlement_repository,
)
from directory_billing.infrastructure.db.repositories.listing_repository import (
    ListingRepository,
)
from directory_billing.infrastructure.db.repositories.notification_log_repository import (
    NotificationLogRepository,
    get_notification_log_repository,
)
from directory_billing.infrastructure.db.repositories.audit_repository import (
    AuditRepository,
    get_audit_repository,
)
from directory_billing.infrastructure.db.repositories.account_repository import (
    ADMIN_ROLE,
    AccountCapabilities,
    AccountRoleRepository,
    get_account_capabilities,
)


__all__ = [
    # Base
    "BaseRepository",
    # Repositories
    "EntitlementRepository",
    "ListingRepository",
    "NotificationLogRepository",
    "AuditRepository",
    "AccountRoleRepository",
    "AccountCapabilities",
    "ADMIN_ROLE",
    # Singletons
    "get_entitlement_repository",
    "get_notification_log_repository",
    "get_audit_repository",
    "get_account_capabilities",
]
