"""
Reconciler — idempotent, conflict-aware writes of provider identity data.

Every write is an ``INSERT ... ON CONFLICT`` keyed on the provider's ID, so
replaying a payload converges on the same row. Concurrent writers resolve
last-write-wins per row; when the payload carries the provider's
``updated_at``, an older payload never overwrites a newer one.

The reconciler never commits. Callers run each reconciliation inside
``session_scope`` so multi-row operations (``upsert_membership``) commit or
roll back as a unit.
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

import structlog
from sqlalchemy import delete, func, or_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.exceptions import DatastoreError
from app.models.base import utcnow
from app.models.organization import Organization
from app.models.organization_member import OrganizationMember
from app.models.profile import Profile
from app.services.mapping import derive_slug, normalize_role, placeholder_email
from meridian_shared.schemas.common import SIZE_VALUES

log = structlog.get_logger()

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

# Columns an insert-if-absent organization may take beyond id, name and slug
_ORG_DETAIL_COLUMNS = frozenset({"industry", "size", "website", "created_at", "source_updated_at"})


class Reconciler:
    """Applies canonical identity records to the datastore."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # -----------------------------------------------------------------------
    # Profiles
    # -----------------------------------------------------------------------

    async def upsert_profile(
        self,
        profile_id: str,
        email: str,
        *,
        full_name: Optional[str] = None,
        avatar_url: Optional[str] = None,
        department: Optional[str] = None,
        is_verified: bool = False,
        source_updated_at: Optional[datetime] = None,
    ) -> bool:
        """Insert or overwrite every mapped profile field.

        Returns False when the stored row is newer than the payload and the
        write was skipped.
        """
        now = utcnow()
        table = Profile.__table__
        stmt = self._insert(Profile).values(
            id=profile_id,
            email=email,
            full_name=full_name,
            avatar_url=avatar_url,
            department=department,
            is_verified=is_verified,
            source_updated_at=source_updated_at,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "email": stmt.excluded.email,
                "full_name": stmt.excluded.full_name,
                "avatar_url": stmt.excluded.avatar_url,
                "department": stmt.excluded.department,
                "is_verified": stmt.excluded.is_verified,
                "source_updated_at": func.coalesce(
                    stmt.excluded.source_updated_at, table.c.source_updated_at
                ),
                "updated_at": now,
            },
            where=_not_stale(table, stmt),
        )
        result = await self._execute(stmt, "profile", profile_id)
        applied = result.rowcount > 0
        if applied:
            log.info("reconcile.profile_upserted", profile_id=profile_id)
        else:
            log.info("reconcile.profile_stale_skipped", profile_id=profile_id)
        return applied

    # -----------------------------------------------------------------------
    # Organizations
    # -----------------------------------------------------------------------

    async def upsert_organization(
        self,
        organization_id: str,
        name: str,
        *,
        slug: Optional[str] = None,
        industry: Optional[str] = None,
        size: Optional[str] = None,
        website: Optional[str] = None,
        created_at: Optional[datetime] = None,
        source_updated_at: Optional[datetime] = None,
    ) -> bool:
        """Insert or update an organization.

        ``name`` and ``slug`` are always overwritten; descriptive fields only
        when the payload carries a value.
        """
        slug = await self._available_slug(organization_id, slug or derive_slug(name))
        now = utcnow()
        table = Organization.__table__
        stmt = self._insert(Organization).values(
            id=organization_id,
            name=name,
            slug=slug,
            industry=industry,
            size=size if size in SIZE_VALUES else None,
            website=website,
            source_updated_at=source_updated_at,
            created_at=created_at or now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={
                "name": stmt.excluded.name,
                "slug": stmt.excluded.slug,
                "industry": func.coalesce(stmt.excluded.industry, table.c.industry),
                "size": func.coalesce(stmt.excluded.size, table.c.size),
                "website": func.coalesce(stmt.excluded.website, table.c.website),
                "source_updated_at": func.coalesce(
                    stmt.excluded.source_updated_at, table.c.source_updated_at
                ),
                "updated_at": now,
            },
            where=_not_stale(table, stmt),
        )
        result = await self._execute(stmt, "organization", organization_id)
        applied = result.rowcount > 0
        if applied:
            log.info("reconcile.organization_upserted", organization_id=organization_id, slug=slug)
        else:
            log.info("reconcile.organization_stale_skipped", organization_id=organization_id)
        return applied

    # -----------------------------------------------------------------------
    # Memberships
    # -----------------------------------------------------------------------

    async def upsert_membership(
        self,
        organization_id: str,
        user_id: str,
        role: Optional[str],
        *,
        email: Optional[str] = None,
        full_name: Optional[str] = None,
        organization_name: Optional[str] = None,
        organization_slug: Optional[str] = None,
        organization_details: Optional[Mapping[str, Any]] = None,
        source_updated_at: Optional[datetime] = None,
    ) -> bool:
        """Create the membership or update its role.

        The referenced profile and organization are inserted first if absent,
        from whatever data the caller has (``organization_details`` may carry
        industry, size, website and timestamps); existing rows are left
        untouched so placeholder data never clobbers real data.

        Returns False when the stored membership is newer than the payload
        and the role was left as is.
        """
        role = normalize_role(role)
        await self._ensure_profile(user_id, email or placeholder_email(user_id), full_name)
        await self._ensure_organization(
            organization_id,
            organization_name or organization_id,
            organization_slug,
            organization_details or {},
        )

        stmt = self._insert(OrganizationMember).values(
            id=uuid.uuid4(),
            organization_id=organization_id,
            user_id=user_id,
            role=role,
            source_updated_at=source_updated_at,
            joined_at=utcnow(),
        )
        table = OrganizationMember.__table__
        stmt = stmt.on_conflict_do_update(
            index_elements=["organization_id", "user_id"],
            set_={
                "role": stmt.excluded.role,
                "source_updated_at": func.coalesce(
                    stmt.excluded.source_updated_at, table.c.source_updated_at
                ),
            },
            where=_not_stale(table, stmt),
        )
        result = await self._execute(stmt, "organization_member", f"{organization_id}/{user_id}")
        applied = result.rowcount > 0
        if applied:
            log.info(
                "reconcile.membership_upserted",
                organization_id=organization_id,
                user_id=user_id,
                role=role,
            )
        else:
            log.info(
                "reconcile.membership_stale_skipped",
                organization_id=organization_id,
                user_id=user_id,
                role=role,
            )
        return applied

    async def remove_membership(self, organization_id: str, user_id: str) -> bool:
        """Delete the membership. Absent rows are a no-op, not an error."""
        stmt = delete(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == user_id,
        )
        result = await self._execute(stmt, "organization_member", f"{organization_id}/{user_id}")
        removed = result.rowcount > 0
        log.info(
            "reconcile.membership_removed",
            organization_id=organization_id,
            user_id=user_id,
            removed=removed,
        )
        return removed

    async def get_membership(
        self, organization_id: str, user_id: str
    ) -> Optional[OrganizationMember]:
        result = await self._execute(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id == user_id,
            ),
            "organization_member",
            f"{organization_id}/{user_id}",
        )
        return result.scalar_one_or_none()

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    async def _ensure_profile(
        self, user_id: str, email: str, full_name: Optional[str]
    ) -> None:
        now = utcnow()
        stmt = (
            self._insert(Profile)
            .values(id=user_id, email=email, full_name=full_name, created_at=now, updated_at=now)
            .on_conflict_do_nothing(index_elements=["id"])
        )
        await self._execute(stmt, "profile", user_id)

    async def _ensure_organization(
        self,
        organization_id: str,
        name: str,
        slug: Optional[str],
        details: Mapping[str, Any],
    ) -> None:
        slug = await self._available_slug(organization_id, slug or derive_slug(name))
        now = utcnow()
        extra = {k: v for k, v in details.items() if k in _ORG_DETAIL_COLUMNS and v is not None}
        if extra.get("size") not in SIZE_VALUES:
            extra.pop("size", None)
        values = {"created_at": now, **extra, "updated_at": now}
        stmt = (
            self._insert(Organization)
            .values(id=organization_id, name=name, slug=slug, **values)
            .on_conflict_do_nothing(index_elements=["id"])
        )
        await self._execute(stmt, "organization", organization_id)

    async def _available_slug(self, organization_id: str, slug: str) -> str:
        """Return ``slug``, or a suffixed variant if another org already owns it."""
        result = await self._execute(
            select(Organization.id).where(
                Organization.slug == slug, Organization.id != organization_id
            ),
            "organization",
            organization_id,
        )
        if result.scalar_one_or_none() is None:
            return slug
        suffixed = f"{slug}-{derive_slug(organization_id)[-8:]}"
        log.warning(
            "reconcile.slug_taken",
            organization_id=organization_id,
            slug=slug,
            resolved=suffixed,
        )
        return suffixed

    def _insert(self, model):
        dialect = self.session.get_bind().dialect.name
        try:
            return _DIALECT_INSERTS[dialect](model)
        except KeyError:
            raise NotImplementedError(f"Upserts are not supported on '{dialect}'") from None

    async def _execute(self, stmt, entity: str, external_id: str):
        try:
            return await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            # Statement text and parameters stay out of the log
            log.error(
                "reconcile.datastore_error",
                entity=entity,
                external_id=external_id,
                error=type(exc).__name__,
            )
            raise DatastoreError(entity, external_id) from exc


def _not_stale(table, stmt):
    """Conflict-update guard: skip payloads older than the stored row."""
    stored = table.c.source_updated_at
    incoming = stmt.excluded.source_updated_at
    return or_(stored.is_(None), incoming.is_(None), stored <= incoming)
