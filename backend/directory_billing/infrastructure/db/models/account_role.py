"""
Account Role Model

Explicit role attributes for accounts. The auth provider owns identity;
roles are ours.
"""

from datetime import datetime

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from directory_billing.infrastructure.db.models.base import utc_now


class AccountRoleModel(SQLModel, table=True):
    __tablename__ = "account_roles"

    account_id: str = Field(primary_key=True, max_length=255)
    role: str = Field(primary_key=True, max_length=50)
    granted_at: datetime = Field(
        default_factory=utc_now, sa_type=DateTime(timezone=True), nullable=False
    )
