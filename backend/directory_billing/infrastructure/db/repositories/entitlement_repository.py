"""
Entitlement Repository

The Entitlement Store: the single choke point for entitlement reads and
writes. Every mutation is one INSERT ... ON CONFLICT (account_id) statement
so racing writers for the same account cannot lose updates.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from directory_billing.domain.entitlement import (
    Entitlement,
    EntitlementPatch,
    EntitlementSource,
    FeatureFlag,
    PaymentStatus,
    Plan,
    PLAN_CATALOG,
    as_utc,
    utcnow,
)
from directory_billing.infrastructure.db.database import dialect_insert, get_session_context
from directory_billing.infrastructure.db.models.entitlement import EntitlementModel
from directory_billing.infrastructure.exceptions import StoreWriteFailedError


logger = logging.getLogger(__name__)

_REF_COLUMNS = ("billing_customer_ref", "billing_subscription_ref")


def _column_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (set, frozenset)):
        return sorted(v.value if isinstance(v, Enum) else v for v in value)
    return value


class EntitlementRepository:
    """
    Repository for entitlement data access.

    Maps between EntitlementModel rows and Entitlement domain entities.
    """

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get(self, account_id: str) -> Optional[Entitlement]:
        """Get the entitlement for an account."""
        return await self._get_one(EntitlementModel.account_id == account_id)

    async def get_by_id(self, entitlement_ref: str) -> Optional[Entitlement]:
        """Get an entitlement by its row id (the admin-facing ref)."""
        try:
            ref = UUID(str(entitlement_ref))
        except ValueError:
            return None
        return await self._get_one(EntitlementModel.id == ref)

    async def get_by_subscription_ref(self, subscription_ref: str) -> Optional[Entitlement]:
        return await self._get_one(EntitlementModel.billing_subscription_ref == subscription_ref)

    async def get_by_customer_ref(self, customer_ref: str) -> Optional[Entitlement]:
        return await self._get_one(EntitlementModel.billing_customer_ref == customer_ref)

    async def resolve(
        self,
        subscription_ref: Optional[str] = None,
        customer_ref: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> Optional[Entitlement]:
        """
        Find the entitlement a billing event refers to.

        Lookup order: subscription ref, then customer ref, then account id.
        Write paths may have populated only some of these.
        """
        if subscription_ref:
            found = await self.get_by_subscription_ref(subscription_ref)
            if found:
                return found
        if customer_ref:
            found = await self.get_by_customer_ref(customer_ref)
            if found:
                return found
        if account_id:
            return await self.get(account_id)
        return None

    async def find_renewal_candidates(
        self, now: datetime, until: datetime
    ) -> list[Entitlement]:
        """Provider-billed entitlements whose validity ends in [now, until)."""
        return await self._get_many(
            EntitlementModel.valid_until >= now,
            EntitlementModel.valid_until < until,
            EntitlementModel.payment_status == PaymentStatus.ACTIVE.value,
            EntitlementModel.billing_subscription_ref.is_not(None),
        )

    async def find_trials_ending(self, now: datetime, until: datetime) -> list[Entitlement]:
        """Trial entitlements whose validity ends in [now, until)."""
        return await self._get_many(
            EntitlementModel.source == EntitlementSource.TRIAL.value,
            EntitlementModel.valid_until >= now,
            EntitlementModel.valid_until < until,
        )

    async def find_lapsed_trials(self, since: datetime, now: datetime) -> list[Entitlement]:
        """Trial entitlements that lapsed in (since, now]."""
        return await self._get_many(
            EntitlementModel.source == EntitlementSource.TRIAL.value,
            EntitlementModel.valid_until > since,
            EntitlementModel.valid_until <= now,
        )

    async def get_many(self, account_ids: list[str]) -> dict[str, Entitlement]:
        if not account_ids:
            return {}
        entitlements = await self._get_many(EntitlementModel.account_id.in_(account_ids))
        return {e.account_id: e for e in entitlements}

    async def summary(self, now: Optional[datetime] = None) -> dict[str, Any]:
        """Counts by plan, source and payment status for admin reporting."""
        now = now or utcnow()
        async with get_session_context() as session:
            def grouped(column):
                return select(column, func.count()).group_by(column)

            by_plan = dict((await session.execute(grouped(EntitlementModel.plan))).all())
            by_source = dict((await session.execute(grouped(EntitlementModel.source))).all())
            by_status = dict(
                (await session.execute(grouped(EntitlementModel.payment_status))).all()
            )
            total = (await session.execute(
                select(func.count()).select_from(EntitlementModel)
            )).scalar_one()
            active = (await session.execute(
                select(func.count()).select_from(EntitlementModel).where(
                    EntitlementModel.valid_until > now
                )
            )).scalar_one()

        return {
            "total": total,
            "active": active,
            "lapsed": total - active,
            "by_plan": by_plan,
            "by_source": by_source,
            "by_payment_status": by_status,
        }

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def create_if_absent(
        self,
        account_id: str,
        patch: EntitlementPatch,
        now: Optional[datetime] = None,
    ) -> tuple[Entitlement, bool]:
        """
        Insert an entitlement unless the account already has one.

        Returns:
            (entitlement, created) where created is False when a row existed
        """
        now = now or utcnow()
        values = self._insert_values(account_id, patch, now)

        try:
            async with get_session_context() as session:
                stmt = dialect_insert(session, EntitlementModel).values(**values)
                stmt = stmt.on_conflict_do_nothing(index_elements=["account_id"])
                result = await session.execute(stmt)
                created = result.rowcount == 1
                model = await self._fetch(session, account_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to create entitlement for {account_id}: {e}")
            raise StoreWriteFailedError(
                "Entitlement create failed",
                operation="create_if_absent",
                table="entitlements",
                original_error=e,
            )

        if created:
            logger.info(f"Created {values['source']} entitlement for account {account_id}")
        return self._to_domain(model), created

    async def upsert(
        self,
        account_id: str,
        patch: EntitlementPatch,
        now: Optional[datetime] = None,
    ) -> Entitlement:
        """
        Merge a patch into the account's entitlement in one statement.

        Creates a default free row first if none exists. Fields absent from
        the patch are untouched. With patch.guard_period_end the update is
        skipped when the stored row is active with a later valid_until.

        Raises:
            StoreWriteFailedError: nothing was written; safe to retry
        """
        now = now or utcnow()
        changes = {k: _column_value(v) for k, v in patch.changes().items()}
        values = self._insert_values(account_id, patch, now)

        try:
            async with get_session_context() as session:
                stmt = dialect_insert(session, EntitlementModel).values(**values)
                if changes:
                    guard = None
                    if patch.guard_period_end and "valid_until" in changes:
                        guard = or_(
                            EntitlementModel.payment_status != PaymentStatus.ACTIVE.value,
                            EntitlementModel.valid_until <= stmt.excluded.valid_until,
                        )
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["account_id"],
                        set_={**changes, "updated_at": now},
                        where=guard,
                    )
                else:
                    stmt = stmt.on_conflict_do_nothing(index_elements=["account_id"])

                result = await session.execute(stmt)
                if result.rowcount == 0:
                    logger.warning(
                        f"Skipped stale entitlement write for account {account_id}"
                    )
                model = await self._fetch(session, account_id)
        except SQLAlchemyError as e:
            logger.error(f"Entitlement upsert failed for {account_id}: {e}")
            raise StoreWriteFailedError(
                "Entitlement write failed",
                operation="upsert",
                table="entitlements",
                original_error=e,
            )

        return self._to_domain(model)

    async def claim_customer_ref(
        self,
        account_id: str,
        customer_ref: str,
        now: Optional[datetime] = None,
    ) -> Entitlement:
        """
        Store a provider customer ref unless one is already stored.

        Concurrent checkouts converge: the first stored ref wins and is
        returned to every caller.
        """
        now = now or utcnow()
        values = self._insert_values(
            account_id, EntitlementPatch(billing_customer_ref=customer_ref), now
        )

        try:
            async with get_session_context() as session:
                stmt = dialect_insert(session, EntitlementModel).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["account_id"],
                    set_={
                        "billing_customer_ref": func.coalesce(
                            EntitlementModel.billing_customer_ref,
                            stmt.excluded.billing_customer_ref,
                        ),
                        "updated_at": now,
                    },
                )
                await session.execute(stmt)
                model = await self._fetch(session, account_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to store customer ref for {account_id}: {e}")
            raise StoreWriteFailedError(
                "Customer ref write failed",
                operation="claim_customer_ref",
                table="entitlements",
                original_error=e,
            )

        return self._to_domain(model)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get_one(self, *conditions) -> Optional[Entitlement]:
        async with get_session_context() as session:
            result = await session.execute(select(EntitlementModel).where(*conditions))
            model = result.scalar_one_or_none()
            return self._to_domain(model) if model else None

    async def _get_many(self, *conditions) -> list[Entitlement]:
        async with get_session_context() as session:
            result = await session.execute(
                select(EntitlementModel)
                .where(*conditions)
                .order_by(EntitlementModel.valid_until)
            )
            return [self._to_domain(m) for m in result.scalars().all()]

    async def _fetch(self, session, account_id: str) -> EntitlementModel:
        result = await session.execute(
            select(EntitlementModel)
            .where(EntitlementModel.account_id == account_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    def _insert_values(
        self, account_id: str, patch: EntitlementPatch, now: datetime
    ) -> dict[str, Any]:
        """Column values for a new row: store defaults overlaid with the patch."""
        free = PLAN_CATALOG[Plan.FREE]
        values = {
            "id": uuid4(),
            "account_id": account_id,
            "plan": Plan.FREE.value,
            "quota": free.quota,
            "source": EntitlementSource.PAID.value,
            "feature_flags": [],
            "valid_from": now,
            "valid_until": now,
            "billing_customer_ref": None,
            "billing_subscription_ref": None,
            "payment_status": PaymentStatus.NONE.value,
            "created_at": now,
            "updated_at": now,
        }
        for key, value in patch.changes().items():
            values[key] = _column_value(value)
        return values

    def _to_domain(self, model: EntitlementModel) -> Entitlement:
        """Convert database model to domain entity."""
        flags = set()
        for value in model.feature_flags or []:
            try:
                flags.add(FeatureFlag(value))
            except ValueError:
                logger.warning(f"Unknown feature flag {value!r} on account {model.account_id}")

        return Entitlement(
            id=str(model.id),
            account_id=model.account_id,
            plan=Plan(model.plan),
            quota=model.quota,
            valid_from=as_utc(model.valid_from),
            valid_until=as_utc(model.valid_until),
            billing_customer_ref=model.billing_customer_ref,
            billing_subscription_ref=model.billing_subscription_ref,
            payment_status=PaymentStatus(model.payment_status),
            source=EntitlementSource(model.source),
            feature_flags=flags,
            created_at=as_utc(model.created_at),
            updated_at=as_utc(model.updated_at),
        )


# =============================================================================
# Singleton Instance
# =============================================================================

_entitlement_repo_instance: Optional[EntitlementRepository] = None


def get_entitlement_repository() -> EntitlementRepository:
    """Get or create entitlement repository singleton."""
    global _entitlement_repo_instance

    if _entitlement_repo_instance is None:
        _entitlement_repo_instance = EntitlementRepository()

    return _entitlement_repo_instance
