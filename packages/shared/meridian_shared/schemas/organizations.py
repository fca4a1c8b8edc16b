"""
Organization schemas for the client-driven organization push.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from .common import OrganizationSize


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrganizationSyncRequest(BaseModel):
    id: str = Field(..., min_length=1, description="Provider organization ID")
    name: str = Field(..., min_length=1, max_length=200, description="Organization display name")
    slug: Optional[str] = Field(
        None,
        min_length=1,
        max_length=100,
        description="URL-safe identifier; derived from name when omitted",
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrganizationResponse(BaseModel):
    id: str
    name: str
    slug: str
    industry: Optional[str] = None
    size: Optional[OrganizationSize] = None
    website: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrganizationSyncResponse(BaseModel):
    success: bool = True
    organization: OrganizationResponse
