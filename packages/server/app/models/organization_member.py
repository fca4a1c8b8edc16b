"""Organization membership (join table, one row per org/user pair)."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from meridian_shared.schemas.common import DEFAULT_ROLE, Role

from .base import UUIDMixin, utcnow

ROLE_CHECK = "role IN ({})".format(", ".join(f"'{r.value}'" for r in Role))


class OrganizationMember(UUIDMixin, SQLModel, table=True):
    __tablename__ = "organization_members"
    __table_args__ = (
        sa.UniqueConstraint(
            "organization_id", "user_id",
            name="organization_members_organization_id_user_id_key",
        ),
        sa.CheckConstraint(ROLE_CHECK, name="ck_organization_members_role"),
    )

    organization_id: str = Field(
        sa_column=sa.Column(
            sa.String,
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    user_id: str = Field(
        sa_column=sa.Column(
            sa.String,
            sa.ForeignKey("profiles.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    role: str = Field(
        default=DEFAULT_ROLE.value,
        nullable=False,
        sa_column_kwargs={"server_default": DEFAULT_ROLE.value},
    )  # owner | admin | member | viewer
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
    # Provider-side modification time of the last applied membership payload
    source_updated_at: Optional[datetime] = Field(
        default=None, sa_type=sa.DateTime(timezone=True)
    )
