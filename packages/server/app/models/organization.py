"""Organization model."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from meridian_shared.schemas.common import OrganizationSize

from .base import ProviderRecordMixin, TimestampMixin

SIZE_CHECK = "size IS NULL OR size IN ({})".format(
    ", ".join(f"'{s.value}'" for s in OrganizationSize)
)


class Organization(ProviderRecordMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"
    __table_args__ = (sa.CheckConstraint(SIZE_CHECK, name="ck_organizations_size"),)

    name: str = Field(nullable=False)
    slug: str = Field(unique=True, nullable=False, index=True)
    industry: Optional[str] = None
    size: Optional[str] = None  # small | medium | large | enterprise
    website: Optional[str] = None
