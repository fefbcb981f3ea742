"""
Listing Domain Models

Directory listings owned by accounts, and their request/response DTOs.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ListingStatus(str, Enum):
    """Moderation status."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RefreshStatus(str, Enum):
    """Freshness of the listing's AI-readability content."""
    FRESH = "fresh"
    STALE = "stale"
    UNKNOWN = "unknown"


class Listing(BaseModel):
    """A directory listing."""
    id: Optional[str] = None
    owner_account_id: str
    url: str
    title: Optional[str] = None
    status: ListingStatus = ListingStatus.PENDING
    refresh_status: RefreshStatus = RefreshStatus.UNKNOWN
    last_refreshed_at: Optional[datetime] = None
    boosted_until: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SubmitListingRequest(BaseModel):
    """Request DTO for submitting a listing."""
    url: str = Field(..., min_length=1, max_length=2048)
    title: Optional[str] = Field(default=None, max_length=255)


class ListingResponse(BaseModel):
    """Response DTO for a listing."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    url: str
    title: Optional[str] = None
    status: ListingStatus
    refresh_status: RefreshStatus
    last_refreshed_at: Optional[datetime] = None
    boosted_until: Optional[datetime] = None
    trial_started: bool = False
