"""
Audit Repository

Administrative override audit trail and purchase credits for one-time
purchases that could not be applied to their listing.
"""

import logging
from typing import Any, Optional
from uuid import uuid4

from sqlmodel import select

from directory_billing.domain.entitlement import utcnow
from directory_billing.infrastructure.db.database import dialect_insert, get_session_context
from directory_billing.infrastructure.db.models.audit import (
    EntitlementAuditModel,
    PurchaseCreditModel,
)


logger = logging.getLogger(__name__)


class AuditRepository:
    """Repository for entitlement_audit and purchase_credits."""

    async def record_override(
        self,
        actor_account_id: str,
        action: str,
        account_id: str,
        entitlement_id: Optional[str],
        before: Optional[dict[str, Any]],
        after: Optional[dict[str, Any]],
    ) -> None:
        """Write one audit row for an administrative override."""
        async with get_session_context() as session:
            session.add(EntitlementAuditModel(
                actor_account_id=actor_account_id,
                action=action,
                account_id=account_id,
                entitlement_id=entitlement_id,
                before=before,
                after=after,
            ))
        logger.info(f"Audit: {actor_account_id} performed {action} on {account_id}")

    async def list_overrides(self, account_id: str) -> list[EntitlementAuditModel]:
        async with get_session_context() as session:
            result = await session.execute(
                select(EntitlementAuditModel)
                .where(EntitlementAuditModel.account_id == account_id)
                .order_by(EntitlementAuditModel.created_at)
            )
            return list(result.scalars().all())

    async def record_purchase_credit(
        self,
        event_id: str,
        account_id: str,
        purchase_type: str,
        listing_id: Optional[str],
        reason: str,
    ) -> bool:
        """
        Credit a paid one-time purchase to the account.

        Idempotent on the provider event id.

        Returns:
            True if a new credit row was written
        """
        async with get_session_context() as session:
            stmt = dialect_insert(session, PurchaseCreditModel).values(
                id=uuid4(),
                event_id=event_id,
                account_id=account_id,
                purchase_type=purchase_type,
                listing_id=listing_id,
                reason=reason,
                created_at=utcnow(),
            )
            result = await session.execute(
                stmt.on_conflict_do_nothing(index_elements=["event_id"])
            )
            return result.rowcount == 1

    async def list_purchase_credits(self, account_id: str) -> list[PurchaseCreditModel]:
        async with get_session_context() as session:
            result = await session.execute(
                select(PurchaseCreditModel)
                .where(PurchaseCreditModel.account_id == account_id)
                .order_by(PurchaseCreditModel.created_at)
            )
            return list(result.scalars().all())


_audit_repo_instance: Optional[AuditRepository] = None


def get_audit_repository() -> AuditRepository:
    """Get or create audit repository singleton."""
    global _audit_repo_instance

    if _audit_repo_instance is None:
        _audit_repo_instance = AuditRepository()

    return _audit_repo_instance
