"""
Administrative Overrides

Audited escape hatch for support staff: gift plans and mark entitlements
paid by hand. Every override writes an entitlement_audit row carrying
before/after snapshots, kept apart from provider-driven changes.
"""

import logging
from datetime import datetime
from typing import Optional

from directory_billing.domain.entitlement import (
    Entitlement,
    EntitlementPatch,
    EntitlementSource,
    EntitlementSummaryResponse,
    PaymentStatus,
    Plan,
    add_months,
    plan_patch,
    utcnow,
)
from directory_billing.infrastructure.db.repositories.audit_repository import (
    AuditRepository,
    get_audit_repository,
)
from directory_billing.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
    get_entitlement_repository,
)
from directory_billing.infrastructure.exceptions import NotFoundError


logger = logging.getLogger(__name__)


def _snapshot(entitlement: Optional[Entitlement]) -> Optional[dict]:
    return entitlement.model_dump(mode="json") if entitlement else None


class AdminOverrides:
    """Administrative entitlement operations. Callers check the admin capability."""

    def __init__(
        self,
        repo: Optional[EntitlementRepository] = None,
        audit_repo: Optional[AuditRepository] = None,
    ):
        self._repo = repo or get_entitlement_repository()
        self._audit = audit_repo or get_audit_repository()

    async def grant_entitlement(
        self,
        actor_account_id: str,
        account_id: str,
        plan: Plan,
        months: int,
        now: Optional[datetime] = None,
    ) -> Entitlement:
        """
        Gift a plan for a number of months.

        Extends from the later of now and the current valid_until, so a
        grant never shortens existing access.
        """
        now = now or utcnow()
        current = await self._repo.get(account_id)

        start = max(now, current.valid_until) if current else now
        fields = {
            "source": EntitlementSource.GIFT,
            "valid_until": add_months(start, months),
        }
        if current is None or not current.is_active(now):
            fields["valid_from"] = now

        updated = await self._repo.upsert(account_id, plan_patch(plan, **fields), now=now)
        await self._audit.record_override(
            actor_account_id,
            "grant_entitlement",
            account_id,
            updated.id,
            before=_snapshot(current),
            after=_snapshot(updated),
        )

        logger.info(
            f"Admin {actor_account_id} granted {plan.value} for {months} month(s) "
            f"to {account_id}, valid until {updated.valid_until.isoformat()}"
        )
        return updated

    async def mark_paid(
        self,
        actor_account_id: str,
        entitlement_ref: str,
        now: Optional[datetime] = None,
    ) -> Entitlement:
        """
        Mark an entitlement as paid outside the payment provider.

        Raises:
            NotFoundError: no entitlement has this id
        """
        current = await self._repo.get_by_id(entitlement_ref)
        if current is None:
            raise NotFoundError(f"Entitlement {entitlement_ref} not found", table="entitlements")

        updated = await self._repo.upsert(
            current.account_id,
            EntitlementPatch(payment_status=PaymentStatus.ACTIVE, source=EntitlementSource.GIFT),
            now=now,
        )
        await self._audit.record_override(
            actor_account_id,
            "mark_paid",
            current.account_id,
            updated.id,
            before=_snapshot(current),
            after=_snapshot(updated),
        )

        logger.info(f"Admin {actor_account_id} marked entitlement {entitlement_ref} paid")
        return updated

    async def get_entitlement(self, account_id: str) -> Entitlement:
        entitlement = await self._repo.get(account_id)
        if entitlement is None:
            raise NotFoundError(f"No entitlement for account {account_id}", table="entitlements")
        return entitlement

    async def summary(self, now: Optional[datetime] = None) -> EntitlementSummaryResponse:
        return EntitlementSummaryResponse(**await self._repo.summary(now))


_admin_overrides_instance: Optional[AdminOverrides] = None


def get_admin_overrides() -> AdminOverrides:
    """Get or create admin overrides singleton."""
    global _admin_overrides_instance

    if _admin_overrides_instance is None:
        _admin_overrides_instance = AdminOverrides()

    return _admin_overrides_instance
