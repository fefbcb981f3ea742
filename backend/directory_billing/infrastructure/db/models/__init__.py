"""
SQLModel ORM Models for the Directory Billing backend

Exports all database models for Alembic autogenerate and application use.
Import models here to register them with SQLModel.metadata.
"""

from directory_billing.infrastructure.db.models.base import (
    JSONType,
    TimestampMixin,
    UUIDMixin,
)
from directory_billing.infrastructure.db.models.entitlement import EntitlementModel
from directory_billing.infrastructure.db.models.listing import ListingModel
from directory_billing.infrastructure.db.models.notification_log import NotificationLogModel
from directory_billing.infrastructure.db.models.webhook_event import ProcessedWebhookEventModel
from directory_billing.infrastructure.db.models.audit import (
    EntitlementAuditModel,
    PurchaseCreditModel,
)
from directory_billing.infrastructure.db.models.account_role import AccountRoleModel


__all__ = [
    # Base
    "JSONType",
    "TimestampMixin",
    "UUIDMixin",
    # Tables
    "EntitlementModel",
    "ListingModel",
    "NotificationLogModel",
    "ProcessedWebhookEventModel",
    "EntitlementAuditModel",
    "PurchaseCreditModel",
    "AccountRoleModel",
]
