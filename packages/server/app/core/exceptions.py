"""
Typed failures raised below the API layer.

Services raise these; only the routers translate them into HTTP outcomes,
because the right status differs per entry path (a webhook wants a 5xx so the
provider redelivers, the on-demand sync wants a user-facing message).
"""

from __future__ import annotations

from typing import Optional


class SyncError(Exception):
    """Base class for identity sync failures."""


class DatastoreError(SyncError):
    """A write or read against the datastore failed."""

    def __init__(self, entity: str, external_id: str, message: str = "datastore operation failed"):
        self.entity = entity
        self.external_id = external_id
        super().__init__(f"{entity} {external_id}: {message}")


class ProviderError(SyncError):
    """The identity provider's live API could not be read."""

    def __init__(self, resource: str, resource_id: str, status_code: Optional[int] = None):
        self.resource = resource
        self.resource_id = resource_id
        self.status_code = status_code
        detail = f"status {status_code}" if status_code is not None else "unreachable"
        super().__init__(f"provider {resource} {resource_id}: {detail}")


class WebhookVerificationFailed(SyncError):
    """A delivery's headers are missing or its signature does not match."""


class InvalidEventPayload(SyncError):
    """A recognized event type whose data does not match its declared shape."""

    def __init__(self, event_type: str):
        self.event_type = event_type
        super().__init__(f"malformed payload for event type {event_type}")
