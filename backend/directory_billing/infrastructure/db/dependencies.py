"""
Dependency Injection Providers for the Directory Billing backend

FastAPI dependencies for database sessions and session-scoped repositories.
"""

from typing import Annotated, AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from directory_billing.infrastructure.db.database import get_session
from directory_billing.infrastructure.db.repositories import ListingRepository


# Type alias for session dependency
SessionDep = Annotated[AsyncSession, Depends(get_session)]


async def get_listing_repository(
    session: SessionDep,
) -> AsyncGenerator[ListingRepository, None]:
    """
    Dependency provider for ListingRepository.

    Usage:
        @router.post("/listings")
        async def submit(repo: ListingRepoDep):
            ...
    """
    yield ListingRepository(session)


ListingRepoDep = Annotated[ListingRepository, Depends(get_listing_repository)]
