"""
Identity-provider webhook endpoint.

POST /api/v1/webhooks/clerk — Verify, decode and apply one signed delivery

Status contract with the provider's delivery service:
- 400 — missing signature headers or bad signature; never retried usefully
- 200 — applied, or a type we deliberately ignore
- 500 — recognized type that failed to apply; the provider redelivers
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import sessionmaker

from app.core.config import Settings, get_app_settings
from app.core.database import get_session_factory
from app.core.exceptions import (
    DatastoreError,
    InvalidEventPayload,
    WebhookVerificationFailed,
)
from app.services import webhooks as webhook_service

log = structlog.get_logger()

router = APIRouter()


@router.post("/clerk")
async def receive_clerk_webhook(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    factory: sessionmaker = Depends(get_session_factory),
):
    """Apply one provider event to the datastore."""
    # Signature is computed over the exact bytes sent
    body = await request.body()

    try:
        headers = webhook_service.delivery_headers(request.headers)
        payload = webhook_service.verify_delivery(body, headers, settings.clerk_webhook_secret)
    except WebhookVerificationFailed as exc:
        log.warning("webhook.rejected", reason=str(exc))
        raise HTTPException(status_code=400, detail="Invalid webhook signature")

    structlog.contextvars.bind_contextvars(delivery_id=headers["svix-id"])
    event_type = payload.get("type")

    try:
        event = webhook_service.decode_event(payload)
    except InvalidEventPayload:
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    if event is None:
        return {"status": "ignored"}

    try:
        await asyncio.wait_for(
            webhook_service.apply_event(event, factory),
            timeout=settings.request_timeout_seconds,
        )
    except DatastoreError:
        log.error("webhook.apply_failed", event_type=event_type)
        raise HTTPException(status_code=500, detail="Webhook processing failed")
    except asyncio.TimeoutError:
        log.error(
            "webhook.apply_timeout",
            event_type=event_type,
            timeout=settings.request_timeout_seconds,
        )
        raise HTTPException(status_code=500, detail="Webhook processing failed")

    log.info("webhook.processed", event_type=event_type)
    return {"status": "processed", "type": event_type}
