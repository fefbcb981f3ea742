"""
Notification Log Model

One row per (account, notification type, period); the unique constraint
is what makes scanner reminders at-most-once per window.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel

from directory_billing.infrastructure.db.models.base import JSONType, utc_now


class NotificationLogModel(SQLModel, table=True):
    """Claimed or sent notification."""

    __tablename__ = "notification_log"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "notification_type", "period",
            name="uq_notification_log_account_type_period",
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    account_id: str = Field(max_length=255, index=True, nullable=False)
    notification_type: str = Field(max_length=50, nullable=False)
    period: str = Field(max_length=50, nullable=False)
    payload: Optional[dict] = Field(default=None, sa_type=JSONType)
    created_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False
    )
