"""
Shared fixtures — in-memory SQLite datastore, fake provider, signed deliveries.
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import jwt
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from svix.webhooks import Webhook

from app.core.config import Settings
from app.core.database import create_engine, create_session_factory, init_db
from app.core.exceptions import ProviderError
from app.main import create_app
from meridian_shared.schemas.events import (
    ProviderMembership,
    ProviderOrganization,
    ProviderUser,
)

WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"meridian-test-signing-key-0001").decode()
SESSION_JWT_SECRET = "meridian-test-session-secret-at-least-32-bytes"


# ---------------------------------------------------------------------------
# Settings and datastore
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        database_url="sqlite+aiosqlite://",
        clerk_webhook_secret=WEBHOOK_SECRET,
        clerk_secret_key="sk_test_meridian",
        session_jwt_key=SESSION_JWT_SECRET,
        session_jwks_url="",
        session_jwt_algorithms=["HS256"],
        authorized_parties=[],
        log_format="text",
    )


@pytest.fixture
async def engine():
    engine = create_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


# ---------------------------------------------------------------------------
# Fake identity provider
# ---------------------------------------------------------------------------

class FakeProviderClient:
    """In-memory stand-in for ProviderClient, keyed by provider IDs."""

    def __init__(self):
        self.users: dict[str, dict[str, Any]] = {}
        self.organizations: dict[str, dict[str, Any]] = {}
        self.memberships: dict[tuple[str, str], dict[str, Any]] = {}
        self.fail_with: Optional[int] = None
        self.calls: list[str] = []
        self.closed = False

    async def close(self) -> None:
        self.closed = True

    async def get_user(self, user_id: str) -> ProviderUser:
        self.calls.append(f"user:{user_id}")
        self._maybe_fail("user", user_id)
        if user_id not in self.users:
            raise ProviderError("user", user_id, 404)
        return ProviderUser.model_validate(self.users[user_id])

    async def get_organization(self, organization_id: str) -> ProviderOrganization:
        self.calls.append(f"organization:{organization_id}")
        self._maybe_fail("organization", organization_id)
        if organization_id not in self.organizations:
            raise ProviderError("organization", organization_id, 404)
        return ProviderOrganization.model_validate(self.organizations[organization_id])

    async def get_membership(
        self, organization_id: str, user_id: str
    ) -> Optional[ProviderMembership]:
        self.calls.append(f"membership:{organization_id}/{user_id}")
        self._maybe_fail("membership", f"{organization_id}/{user_id}")
        data = self.memberships.get((organization_id, user_id))
        return ProviderMembership.model_validate(data) if data else None

    def _maybe_fail(self, resource: str, resource_id: str) -> None:
        if self.fail_with is not None:
            raise ProviderError(resource, resource_id, self.fail_with)


@pytest.fixture
def provider() -> FakeProviderClient:
    return FakeProviderClient()


# ---------------------------------------------------------------------------
# App and client
# ---------------------------------------------------------------------------

@pytest.fixture
def test_app(settings, session_factory, provider):
    return create_app(settings=settings, session_factory=session_factory, provider_client=provider)


@pytest.fixture
async def client(test_app):
    async with AsyncClient(transport=ASGITransport(app=test_app), base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def user_payload(
    user_id: str = "user_1",
    email: Optional[str] = "ada@example.com",
    first_name: Optional[str] = "Ada",
    last_name: Optional[str] = "Lovelace",
    updated_at: Optional[int] = 1_700_000_000_000,
    **extra: Any,
) -> dict[str, Any]:
    data = {
        "id": user_id,
        "email_addresses": [
            {"id": "idn_1", "email_address": email, "verification": {"status": "verified"}}
        ] if email else [],
        "first_name": first_name,
        "last_name": last_name,
        "image_url": f"https://img.example.com/{user_id}.png",
        "public_metadata": {},
        "created_at": 1_690_000_000_000,
        "updated_at": updated_at,
    }
    data.update(extra)
    return data


def organization_payload(
    org_id: str = "org_1",
    name: str = "Acme Corp",
    slug: Optional[str] = "acme-corp",
    updated_at: Optional[int] = 1_700_000_000_000,
    **extra: Any,
) -> dict[str, Any]:
    data = {
        "id": org_id,
        "name": name,
        "slug": slug,
        "public_metadata": {},
        "created_at": 1_690_000_000_000,
        "updated_at": updated_at,
    }
    data.update(extra)
    return data


def membership_payload(
    org_id: str = "org_1",
    user_id: str = "user_1",
    role: Optional[str] = "org:admin",
    org_name: str = "Acme Corp",
    org_slug: Optional[str] = "acme-corp",
    email: Optional[str] = "ada@example.com",
    updated_at: Optional[int] = 1_700_000_000_000,
) -> dict[str, Any]:
    return {
        "id": f"orgmem_{org_id}_{user_id}",
        "organization": {"id": org_id, "name": org_name, "slug": org_slug},
        "public_user_data": {
            "user_id": user_id,
            "identifier": email,
            "first_name": "Ada",
            "last_name": "Lovelace",
        },
        "role": role,
        "created_at": 1_690_000_000_000,
        "updated_at": updated_at,
    }


def webhook_event(event_type: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"type": event_type, "object": "event", "data": data, "timestamp": 1_700_000_000_000}


# ---------------------------------------------------------------------------
# Signing helpers
# ---------------------------------------------------------------------------

def signed_delivery(
    payload: Any,
    secret: str = WEBHOOK_SECRET,
    msg_id: str = "msg_test_1",
) -> tuple[bytes, dict[str, str]]:
    """Serialize ``payload`` and sign it the way the provider's delivery service does."""
    body = payload if isinstance(payload, str) else json.dumps(payload)
    timestamp = datetime.now(timezone.utc)
    signature = Webhook(secret).sign(msg_id, timestamp, body)
    headers = {
        "svix-id": msg_id,
        "svix-timestamp": str(int(timestamp.timestamp())),
        "svix-signature": signature,
        "content-type": "application/json",
    }
    return body.encode(), headers


def session_token(
    user_id: str = "user_1",
    org_id: Optional[str] = None,
    org_role: Optional[str] = None,
    expires_in: int = 300,
    secret: str = SESSION_JWT_SECRET,
    **claims: Any,
) -> str:
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + timedelta(seconds=expires_in), **claims}
    if org_id:
        payload["org_id"] = org_id
    if org_role:
        payload["org_role"] = org_role
    return jwt.encode(payload, secret, algorithm="HS256")


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
