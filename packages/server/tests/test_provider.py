"""
Provider client tests against httpx.MockTransport.
"""

from __future__ import annotations

import httpx
import pytest

from app.core.exceptions import ProviderError
from app.core.provider import ProviderClient

from conftest import membership_payload, organization_payload, user_payload


def _client(handler) -> ProviderClient:
    return ProviderClient(
        "https://api.provider.test/v1/",
        "sk_test_meridian",
        transport=httpx.MockTransport(handler),
    )


class TestProviderClient:
    @pytest.mark.asyncio
    async def test_get_user(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json=user_payload())

        client = _client(handler)
        user = await client.get_user("user_1")
        await client.close()

        assert user.id == "user_1"
        assert user.email_addresses[0].email_address == "ada@example.com"
        assert seen["url"] == "https://api.provider.test/v1/users/user_1"
        assert seen["auth"] == "Bearer sk_test_meridian"

    @pytest.mark.asyncio
    async def test_get_organization(self):
        client = _client(lambda request: httpx.Response(200, json=organization_payload()))
        org = await client.get_organization("org_1")
        await client.close()
        assert org.slug == "acme-corp"

    @pytest.mark.asyncio
    async def test_get_membership_filters_by_user(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["user_id"] = request.url.params["user_id"]
            return httpx.Response(
                200,
                json={
                    "data": [
                        membership_payload(user_id="user_2"),
                        membership_payload(user_id="user_1", role="org:viewer"),
                    ],
                    "total_count": 2,
                },
            )

        client = _client(handler)
        membership = await client.get_membership("org_1", "user_1")
        await client.close()

        assert seen["path"] == "/v1/organizations/org_1/memberships"
        assert seen["user_id"] == "user_1"
        assert membership.role == "org:viewer"

    @pytest.mark.asyncio
    async def test_get_membership_none(self):
        client = _client(lambda request: httpx.Response(200, json={"data": [], "total_count": 0}))
        assert await client.get_membership("org_1", "user_1") is None
        await client.close()

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = _client(lambda request: httpx.Response(404, json={"errors": []}))
        with pytest.raises(ProviderError) as exc_info:
            await client.get_user("user_404")
        await client.close()
        assert exc_info.value.status_code == 404
        assert exc_info.value.resource == "user"

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(ProviderError) as exc_info:
            await client.get_organization("org_1")
        await client.close()
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        client = _client(lambda request: httpx.Response(200, json={"object": "user"}))
        with pytest.raises(ProviderError):
            await client.get_user("user_1")
        await client.close()

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(ProviderError):
            await client.get_user("user_1")
        await client.close()
