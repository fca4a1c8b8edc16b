"""
On-demand sync endpoints.

POST /api/v1/sync/user          — Re-derive the caller's profile and active-org role
POST /api/v1/sync/organization  — Upsert the caller's active organization

Both require a valid provider session. Failures return a generic retry
message; the cause is logged, not returned.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import sessionmaker

from app.core.auth import SessionContext, get_session_context, require_active_org
from app.core.config import Settings, get_app_settings
from app.core.database import get_session_factory
from app.core.exceptions import DatastoreError, ProviderError
from app.core.provider import ProviderClient, get_provider_client
from app.services import sync as sync_service
from meridian_shared.schemas.organizations import (
    OrganizationResponse,
    OrganizationSyncRequest,
    OrganizationSyncResponse,
)
from meridian_shared.schemas.users import UserSyncResponse

log = structlog.get_logger()

router = APIRouter()

SYNC_FAILED_DETAIL = "Couldn't sync your account, please retry."


async def _bounded(coro, timeout: float):
    """Await ``coro`` within ``timeout``; map failures to HTTP errors."""
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except ProviderError as exc:
        log.error(
            "sync.provider_failed",
            resource=exc.resource,
            resource_id=exc.resource_id,
            status_code=exc.status_code,
        )
        raise HTTPException(status_code=502, detail=SYNC_FAILED_DETAIL)
    except DatastoreError as exc:
        log.error("sync.datastore_failed", entity=exc.entity, external_id=exc.external_id)
        raise HTTPException(status_code=500, detail=SYNC_FAILED_DETAIL)
    except asyncio.TimeoutError:
        log.error("sync.timeout", timeout=timeout)
        raise HTTPException(status_code=504, detail=SYNC_FAILED_DETAIL)


@router.post("/user", response_model=UserSyncResponse)
async def sync_user(
    ctx: SessionContext = Depends(get_session_context),
    settings: Settings = Depends(get_app_settings),
    factory: sessionmaker = Depends(get_session_factory),
    provider: ProviderClient = Depends(get_provider_client),
):
    """Sync the caller from the provider's live API. Safe to call repeatedly."""
    user = await _bounded(
        sync_service.sync_current_user(ctx, provider, factory),
        settings.request_timeout_seconds,
    )
    return UserSyncResponse(user=user)


@router.post("/organization", response_model=OrganizationSyncResponse)
async def sync_organization(
    body: OrganizationSyncRequest,
    ctx: SessionContext = Depends(require_active_org),
    settings: Settings = Depends(get_app_settings),
    factory: sessionmaker = Depends(get_session_factory),
):
    """Upsert the caller's active organization from the request body."""
    if body.id != ctx.org_id:
        log.warning("sync.organization_forbidden", org_id=body.id, active_org_id=ctx.org_id)
        raise HTTPException(status_code=403, detail="Organization is not the active organization")

    org = await _bounded(
        sync_service.sync_organization(body, factory),
        settings.request_timeout_seconds,
    )
    return OrganizationSyncResponse(organization=OrganizationResponse.model_validate(org))
