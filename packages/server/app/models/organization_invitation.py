"""Organization invitation. Part of the identity schema; no sync path writes it."""

from datetime import datetime, timedelta
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from meridian_shared.schemas.common import DEFAULT_ROLE

from .base import UUIDMixin, utcnow
from .organization_member import ROLE_CHECK

INVITATION_TTL_DAYS = 7


def _default_expiry() -> datetime:
    return utcnow() + timedelta(days=INVITATION_TTL_DAYS)


class OrganizationInvitation(UUIDMixin, SQLModel, table=True):
    __tablename__ = "organization_invitations"
    __table_args__ = (sa.CheckConstraint(ROLE_CHECK, name="ck_organization_invitations_role"),)

    organization_id: str = Field(
        sa_column=sa.Column(
            sa.String,
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    email: str = Field(nullable=False, index=True)
    role: str = Field(
        default=DEFAULT_ROLE.value,
        nullable=False,
        sa_column_kwargs={"server_default": DEFAULT_ROLE.value},
    )
    token: uuid.UUID = Field(default_factory=uuid.uuid4, unique=True, index=True, nullable=False)
    invited_by: str = Field(nullable=False)  # provider user ID
    expires_at: datetime = Field(
        default_factory=_default_expiry,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    accepted_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
