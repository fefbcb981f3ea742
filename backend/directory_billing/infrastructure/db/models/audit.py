"""
Audit and Credit Models

Administrative overrides are audited separately from provider-driven
changes. One-time purchases whose listing disappeared are kept as credits.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from directory_billing.infrastructure.db.models.base import JSONType, utc_now


class EntitlementAuditModel(SQLModel, table=True):
    """One row per administrative override."""

    __tablename__ = "entitlement_audit"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    actor_account_id: str = Field(max_length=255, nullable=False)
    action: str = Field(max_length=50, nullable=False)
    account_id: str = Field(max_length=255, index=True, nullable=False)
    entitlement_id: Optional[str] = Field(default=None, max_length=64)
    before: Optional[dict] = Field(default=None, sa_type=JSONType)
    after: Optional[dict] = Field(default=None, sa_type=JSONType)
    created_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False
    )


class PurchaseCreditModel(SQLModel, table=True):
    """A paid one-time purchase that could not be applied to its listing."""

    __tablename__ = "purchase_credits"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    event_id: str = Field(max_length=255, unique=True, nullable=False)
    account_id: str = Field(max_length=255, index=True, nullable=False)
    purchase_type: str = Field(max_length=50, nullable=False)
    listing_id: Optional[str] = Field(default=None, max_length=64)
    reason: str = Field(max_length=100, nullable=False)
    created_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False
    )
    consumed_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
