"""
Database Infrastructure Package for the Directory Billing backend

Exports database utilities and dependencies.
"""

from directory_billing.infrastructure.db.database import (
    DatabaseManager,
    dialect_insert,
    get_db_manager,
    get_session,
    get_session_context,
    init_db,
    close_db,
)

from directory_billing.infrastructure.db.dependencies import (
    SessionDep,
    get_listing_repository,
    ListingRepoDep,
)


__all__ = [
    # Database management
    "DatabaseManager",
    "dialect_insert",
    "get_db_manager",
    "get_session",
    "get_session_context",
    "init_db",
    "close_db",
    # Dependencies
    "SessionDep",
    "get_listing_repository",
    "ListingRepoDep",
]
