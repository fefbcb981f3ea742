"""
Entitlement Database Model

SQLModel table holding the single entitlement row per account.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field

from directory_billing.infrastructure.db.models.base import (
    JSONType,
    TimestampMixin,
    UUIDMixin,
)


class EntitlementModel(UUIDMixin, TimestampMixin, table=True):
    """
    Maps to the 'entitlements' table.

    account_id is unique: every write is an upsert keyed on it.
    """

    __tablename__ = "entitlements"

    account_id: str = Field(max_length=255, unique=True, index=True, nullable=False)

    # Plan details
    plan: str = Field(default="free", max_length=20)
    quota: int = Field(default=1)
    source: str = Field(default="paid", max_length=20)
    feature_flags: list[str] = Field(default_factory=list, sa_type=JSONType)

    # Validity window; valid_until is the single "is active" signal
    valid_from: datetime = Field(sa_type=DateTime(timezone=True), nullable=False)
    valid_until: datetime = Field(sa_type=DateTime(timezone=True), nullable=False, index=True)

    # Payment provider correlation
    billing_customer_ref: Optional[str] = Field(
        default=None, max_length=255, unique=True, index=True
    )
    billing_subscription_ref: Optional[str] = Field(
        default=None, max_length=255, unique=True, index=True
    )
    payment_status: str = Field(default="none", max_length=20)
