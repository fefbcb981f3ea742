"""
Listing Database Model
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Field

from directory_billing.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class ListingModel(UUIDMixin, TimestampMixin, table=True):
    """Directory listing owned by an account."""

    __tablename__ = "listings"

    owner_account_id: str = Field(max_length=255, index=True, nullable=False)
    url: str = Field(max_length=2048, nullable=False)
    title: Optional[str] = Field(default=None, max_length=255)
    status: str = Field(default="pending", max_length=20, index=True)
    refresh_status: str = Field(default="unknown", max_length=20)
    last_refreshed_at: Optional[datetime] = Field(
        default=None, sa_type=DateTime(timezone=True), index=True
    )
    boosted_until: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
