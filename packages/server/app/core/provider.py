"""
Identity-provider live read client.

Reads the current user, organization, and membership from the provider's
backend API. Responses decode into the same payload models the webhook path
uses. One client lives on ``app.state`` and reaches handlers through the
``get_provider_client`` dependency, so tests substitute a fake.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog
from fastapi import Request
from pydantic import ValidationError

from meridian_shared.schemas.events import (
    ProviderMembership,
    ProviderOrganization,
    ProviderUser,
)

from app.core.exceptions import ProviderError

log = structlog.get_logger()


class ProviderClient:
    """Async client for the provider backend API."""

    def __init__(
        self,
        api_url: str,
        secret_key: str,
        timeout: float = 3.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers={"Authorization": f"Bearer {secret_key}"},
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def get_user(self, user_id: str) -> ProviderUser:
        body = await self._get(f"/users/{user_id}", "user", user_id)
        return self._decode(ProviderUser, body, "user", user_id)

    async def get_organization(self, organization_id: str) -> ProviderOrganization:
        body = await self._get(f"/organizations/{organization_id}", "organization", organization_id)
        return self._decode(ProviderOrganization, body, "organization", organization_id)

    async def get_membership(
        self, organization_id: str, user_id: str
    ) -> Optional[ProviderMembership]:
        """The user's membership in the organization, or None if not a member."""
        body = await self._get(
            f"/organizations/{organization_id}/memberships",
            "membership",
            f"{organization_id}/{user_id}",
            params={"user_id": user_id, "limit": 1},
        )
        items = body.get("data", []) if isinstance(body, dict) else body
        for item in items or []:
            membership = self._decode(
                ProviderMembership, item, "membership", f"{organization_id}/{user_id}"
            )
            if membership.public_user_data.user_id == user_id:
                return membership
        return None

    async def _get(
        self,
        path: str,
        resource: str,
        resource_id: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            log.warning(
                "provider.unreachable",
                resource=resource,
                resource_id=resource_id,
                error=type(exc).__name__,
            )
            raise ProviderError(resource, resource_id) from exc

        if response.status_code >= 400:
            log.warning(
                "provider.request_failed",
                resource=resource,
                resource_id=resource_id,
                status=response.status_code,
            )
            raise ProviderError(resource, resource_id, response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            log.warning("provider.unexpected_payload", resource=resource, resource_id=resource_id)
            raise ProviderError(resource, resource_id, response.status_code) from exc

    @staticmethod
    def _decode(model, body: Any, resource: str, resource_id: str):
        try:
            return model.model_validate(body)
        except ValidationError as exc:
            log.warning("provider.unexpected_payload", resource=resource, resource_id=resource_id)
            raise ProviderError(resource, resource_id) from exc


def get_provider_client(request: Request) -> ProviderClient:
    """FastAPI dependency for the app's provider client."""
    return request.app.state.provider_client
