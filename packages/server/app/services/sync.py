"""
On-demand sync — re-derive the caller's state from the provider's live API.

Called by the client on sign-in and organization switch. It is the
correctness backstop for webhook delivery that is late or lost: whatever the
webhook path would eventually write, this path writes now.
"""

from __future__ import annotations

import structlog
from sqlalchemy.orm import sessionmaker

from app.core.auth import SessionContext
from app.core.database import session_scope
from app.core.provider import ProviderClient
from app.models.organization import Organization
from app.services.mapping import (
    from_epoch_ms,
    normalize_role,
    organization_fields,
    profile_fields,
)
from app.services.reconciler import Reconciler
from meridian_shared.schemas.organizations import OrganizationSyncRequest
from meridian_shared.schemas.users import MembershipAction, SyncedUser

log = structlog.get_logger()


async def sync_current_user(
    ctx: SessionContext,
    provider: ProviderClient,
    factory: sessionmaker,
) -> SyncedUser:
    """Fetch the caller's profile and active-org role live, then reconcile.

    Provider reads happen before the transaction opens so no database
    transaction is held across network calls.
    """
    user = await provider.get_user(ctx.user_id)
    fields = profile_fields(user)

    org = membership = None
    if ctx.org_id:
        org = await provider.get_organization(ctx.org_id)
        membership = await provider.get_membership(ctx.org_id, ctx.user_id)
        if membership is None:
            log.warning("sync.membership_missing_at_provider", org_id=ctx.org_id)

    org_role = normalize_role(membership.role) if membership else None
    action = MembershipAction.NONE

    async with session_scope(factory) as session:
        reconciler = Reconciler(session)
        await reconciler.upsert_profile(**fields)

        if org is not None and membership is not None:
            existing = await reconciler.get_membership(org.id, ctx.user_id)
            if existing is None:
                action = MembershipAction.CREATED
            elif existing.role != org_role:
                action = MembershipAction.UPDATED
            else:
                action = MembershipAction.UNCHANGED

            if action is not MembershipAction.UNCHANGED:
                details = organization_fields(org)
                applied = await reconciler.upsert_membership(
                    org.id,
                    ctx.user_id,
                    org_role,
                    email=fields["email"],
                    full_name=fields["full_name"],
                    organization_name=details.pop("name"),
                    organization_slug=details.pop("slug"),
                    organization_details=details,
                    source_updated_at=from_epoch_ms(membership.updated_at),
                )
                if applied:
                    log.info(
                        f"sync.membership_{action.value}",
                        org_id=org.id,
                        previous_role=existing.role if existing is not None else None,
                        org_role=org_role,
                    )
                else:
                    # Stored row is newer than this read; report what is stored
                    action = MembershipAction.UNCHANGED
                    org_role = existing.role

    log.info(
        "sync.user_synced",
        org_id=ctx.org_id,
        org_role=org_role,
        membership_action=action.value,
    )
    return SyncedUser(
        id=user.id,
        email=fields["email"],
        full_name=fields["full_name"],
        avatar_url=fields["avatar_url"],
        org_id=org.id if org is not None and membership is not None else None,
        org_role=org_role,
        membership_action=action,
    )


async def sync_organization(
    body: OrganizationSyncRequest,
    factory: sessionmaker,
) -> Organization:
    """Upsert an organization pushed by the client. No membership side effect."""
    async with session_scope(factory) as session:
        await Reconciler(session).upsert_organization(body.id, body.name, slug=body.slug)
        org = await session.get(Organization, body.id)
    log.info("sync.organization_synced", org_id=body.id)
    return org
