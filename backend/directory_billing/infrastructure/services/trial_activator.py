"""
Trial Activator

Creates the one free trial entitlement an account ever gets, on its first
listing submission. Creation is an atomic insert-if-absent: an account
that already has any entitlement row is never touched again.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from directory_billing.config.settings import get_settings
from directory_billing.domain.entitlement import (
    Entitlement,
    EntitlementSource,
    PaymentStatus,
    Plan,
    plan_patch,
    utcnow,
)
from directory_billing.infrastructure.db.repositories.entitlement_repository import (
    EntitlementRepository,
    get_entitlement_repository,
)


logger = logging.getLogger(__name__)


class TrialActivator:
    """Starts free trials. Makes no payment provider calls."""

    def __init__(
        self,
        repo: Optional[EntitlementRepository] = None,
        trial_days: Optional[int] = None,
    ):
        self._repo = repo or get_entitlement_repository()
        self._trial_days = trial_days if trial_days is not None else get_settings().trial_days

    async def activate(
        self,
        account_id: str,
        now: Optional[datetime] = None,
    ) -> tuple[Entitlement, bool]:
        """
        Ensure the account has an entitlement, starting a trial if it has none.

        Returns:
            (entitlement, created) where created is True only for a new trial
        """
        now = now or utcnow()
        patch = plan_patch(
            Plan.FREE,
            source=EntitlementSource.TRIAL,
            payment_status=PaymentStatus.NONE,
            valid_from=now,
            valid_until=now + timedelta(days=self._trial_days),
        )
        entitlement, created = await self._repo.create_if_absent(account_id, patch, now=now)

        if created:
            logger.info(
                f"Started {self._trial_days}-day trial for account {account_id}, "
                f"valid until {entitlement.valid_until.isoformat()}"
            )
        return entitlement, created


_trial_activator_instance: Optional[TrialActivator] = None


def get_trial_activator() -> TrialActivator:
    """Get or create trial activator singleton."""
    global _trial_activator_instance

    if _trial_activator_instance is None:
        _trial_activator_instance = TrialActivator()

    return _trial_activator_instance
