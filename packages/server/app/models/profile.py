"""Profile model (one row per provider user)."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import ProviderRecordMixin, TimestampMixin


class Profile(ProviderRecordMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "profiles"

    email: str = Field(nullable=False, index=True)
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    department: Optional[str] = None
    is_verified: bool = Field(
        default=False,
        nullable=False,
        sa_column_kwargs={"server_default": sa.false()},
    )
