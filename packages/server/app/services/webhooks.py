"""
Webhook ingestion service — verify, decode, dispatch.

Deliveries are at-least-once; every dispatch target is an idempotent
reconciler operation, so a redelivered event converges on the same rows.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy.orm import sessionmaker
from svix.webhooks import Webhook, WebhookVerificationError

from app.core.config import DEV_WEBHOOK_SECRET
from app.core.database import session_scope
from app.core.exceptions import InvalidEventPayload, WebhookVerificationFailed
from app.services.mapping import membership_fields, organization_fields, profile_fields
from app.services.reconciler import Reconciler
from meridian_shared.schemas.events import (
    HANDLED_EVENT_TYPES,
    UNHANDLED_DELETION_TYPES,
    MembershipEvent,
    OrganizationEvent,
    ProviderEvent,
    UserEvent,
    provider_event_adapter,
)

log = structlog.get_logger()

SIGNATURE_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


def delivery_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Pick the three signature headers; raise if any is missing or empty."""
    found = {name: headers.get(name) or "" for name in SIGNATURE_HEADERS}
    missing = [name for name, value in found.items() if not value]
    if missing:
        raise WebhookVerificationFailed(f"Missing headers: {', '.join(missing)}")
    return found


def verify_delivery(body: bytes, headers: dict[str, str], secret: str) -> dict[str, Any]:
    """Check the signature over the raw body and return the parsed payload.

    With the development secret the signature is not checked.
    """
    if secret == DEV_WEBHOOK_SECRET:
        log.warning("webhook.verification_skipped", reason="development secret configured")
    else:
        # Signature check only; the body is parsed below
        try:
            Webhook(secret).verify(body, headers)
        except (WebhookVerificationError, ValueError) as exc:
            raise WebhookVerificationFailed("Signature verification failed") from exc

    try:
        payload = json.loads(body)
    except ValueError as exc:
        raise WebhookVerificationFailed("Body is not valid JSON") from exc

    if not isinstance(payload, dict):
        raise WebhookVerificationFailed("Body is not a JSON object")
    return payload


def decode_event(payload: dict[str, Any]) -> Optional[ProviderEvent]:
    """Decode into the typed event for its ``type``; None for types we don't handle."""
    event_type = payload.get("type")

    if not isinstance(event_type, str):
        log.info("webhook.ignored", event_type=repr(event_type))
        return None

    if event_type in UNHANDLED_DELETION_TYPES:
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        log.warning("webhook.deletion_unhandled", event_type=event_type, external_id=data.get("id"))
        return None

    if event_type not in HANDLED_EVENT_TYPES:
        log.info("webhook.ignored", event_type=event_type)
        return None

    try:
        return provider_event_adapter.validate_python(payload)
    except ValidationError as exc:
        log.error(
            "webhook.invalid_payload",
            event_type=event_type,
            errors=[".".join(str(p) for p in e["loc"]) for e in exc.errors()],
        )
        raise InvalidEventPayload(event_type) from exc


async def dispatch_event(event: ProviderEvent, reconciler: Reconciler) -> None:
    """Route one decoded event to its reconciler operation."""
    if isinstance(event, UserEvent):
        await reconciler.upsert_profile(**profile_fields(event.data))

    elif isinstance(event, OrganizationEvent):
        await reconciler.upsert_organization(**organization_fields(event.data))

    elif isinstance(event, MembershipEvent):
        if event.type == "organizationMembership.deleted":
            await reconciler.remove_membership(
                event.data.organization.id,
                event.data.public_user_data.user_id,
            )
        else:
            await reconciler.upsert_membership(**membership_fields(event.data))


async def apply_event(event: ProviderEvent, factory: sessionmaker) -> None:
    """Dispatch inside a single transaction."""
    async with session_scope(factory) as session:
        await dispatch_event(event, Reconciler(session))
