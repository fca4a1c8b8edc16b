"""On-demand user sync schemas."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .common import Role


class MembershipAction(str, Enum):
    """What the on-demand sync did to the caller's membership row."""
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    NONE = "none"  # no active organization in the session


class SyncedUser(BaseModel):
    """Normalized profile and org context, ready for the UI without another round-trip."""
    id: str
    email: str
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    org_id: Optional[str] = None
    org_role: Optional[Role] = None
    membership_action: MembershipAction = MembershipAction.NONE


class UserSyncResponse(BaseModel):
    success: bool = True
    user: SyncedUser
