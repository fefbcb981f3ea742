"""
Notification Log Repository

Claim-before-send bookkeeping for scheduled notifications. A claim is an
insert-if-absent on (account_id, notification_type, period); only the
caller whose insert lands may send.
"""

import logging
from typing import Any, Optional
from uuid import uuid4

from sqlalchemy import delete

from directory_billing.domain.entitlement import utcnow
from directory_billing.infrastructure.db.database import dialect_insert, get_session_context
from directory_billing.infrastructure.db.models.notification_log import NotificationLogModel


logger = logging.getLogger(__name__)


class NotificationLogRepository:
    """Repository for the notification_log table."""

    async def claim(
        self,
        account_id: str,
        notification_type: str,
        period: str,
        payload: Optional[dict[str, Any]] = None,
    ) -> bool:
        """
        Claim a notification slot.

        Returns:
            True if this caller owns the slot, False if already claimed
        """
        async with get_session_context() as session:
            stmt = dialect_insert(session, NotificationLogModel).values(
                id=uuid4(),
                account_id=account_id,
                notification_type=notification_type,
                period=period,
                payload=payload,
                created_at=utcnow(),
            )
            stmt = stmt.on_conflict_do_nothing(
                index_elements=["account_id", "notification_type", "period"]
            )
            result = await session.execute(stmt)
            return result.rowcount == 1

    async def release(self, account_id: str, notification_type: str, period: str) -> None:
        """Drop a claim so a later run can retry the send."""
        async with get_session_context() as session:
            await session.execute(
                delete(NotificationLogModel).where(
                    NotificationLogModel.account_id == account_id,
                    NotificationLogModel.notification_type == notification_type,
                    NotificationLogModel.period == period,
                )
            )
        logger.info(f"Released {notification_type} claim for {account_id} ({period})")


_notification_log_repo_instance: Optional[NotificationLogRepository] = None


def get_notification_log_repository() -> NotificationLogRepository:
    """Get or create notification log repository singleton."""
    global _notification_log_repo_instance

    if _notification_log_repo_instance is None:
        _notification_log_repo_instance = NotificationLogRepository()

    return _notification_log_repo_instance
