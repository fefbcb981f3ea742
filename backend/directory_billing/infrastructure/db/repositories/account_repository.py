"""
Account Capabilities

Roles are explicit attributes stored in account_roles. Callers ask for a
capability through the AccountCapabilities interface and never inspect
identity details such as email addresses.
"""

import logging
from typing import Optional, Protocol

from sqlmodel import select

from directory_billing.domain.entitlement import utcnow
from directory_billing.infrastructure.db.database import dialect_insert, get_session_context
from directory_billing.infrastructure.db.models.account_role import AccountRoleModel


logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class AccountCapabilities(Protocol):
    """Answers whether an account holds a named capability."""

    async def has_capability(self, account_id: str, capability: str) -> bool:
        ...


class AccountRoleRepository:
    """AccountCapabilities backed by the account_roles table."""

    async def has_capability(self, account_id: str, capability: str) -> bool:
        async with get_session_context() as session:
            result = await session.execute(
                select(AccountRoleModel.role).where(
                    AccountRoleModel.account_id == account_id,
                    AccountRoleModel.role == capability,
                )
            )
            return result.scalar_one_or_none() is not None

    async def grant_role(self, account_id: str, role: str) -> None:
        """Give an account a role. Granting twice is a no-op."""
        async with get_session_context() as session:
            stmt = dialect_insert(session, AccountRoleModel).values(
                account_id=account_id,
                role=role,
                granted_at=utcnow(),
            )
            await session.execute(
                stmt.on_conflict_do_nothing(index_elements=["account_id", "role"])
            )
        logger.info(f"Granted role {role} to account {account_id}")


_account_capabilities_instance: Optional[AccountRoleRepository] = None


def get_account_capabilities() -> AccountCapabilities:
    """Get or create the account capabilities singleton."""
    global _account_capabilities_instance

    if _account_capabilities_instance is None:
        _account_capabilities_instance = AccountRoleRepository()

    return _account_capabilities_instance
