"""
Identity-provider payload schemas.

The same objects arrive two ways: as the ``data`` block of a signed webhook
delivery, and as the body of a live read from the provider's backend API.
Both paths decode through these models so they map to identical records.

Event envelopes form a tagged union on ``type``; a recognized type whose
``data`` does not fit its shape fails validation instead of being cast.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter, field_validator


# ---------------------------------------------------------------------------
# Payload objects
# ---------------------------------------------------------------------------

class EmailVerification(BaseModel):
    status: Optional[str] = None


class EmailAddress(BaseModel):
    id: Optional[str] = None
    email_address: str = Field(min_length=1)
    verification: Optional[EmailVerification] = None


class _WithMetadata(BaseModel):
    public_metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("public_metadata", mode="before")
    @classmethod
    def _null_metadata(cls, value: Any) -> Any:
        return {} if value is None else value


class ProviderUser(_WithMetadata):
    """A user object (``user.*`` events and ``GET /users/{id}``)."""
    id: str = Field(min_length=1)
    email_addresses: list[EmailAddress] = Field(default_factory=list)
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None
    created_at: Optional[int] = None  # epoch milliseconds
    updated_at: Optional[int] = None


class ProviderOrganization(_WithMetadata):
    """An organization object (``organization.*`` events and ``GET /organizations/{id}``)."""
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    slug: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


class MembershipOrganization(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    slug: Optional[str] = None


class PublicUserData(BaseModel):
    user_id: str = Field(min_length=1)
    email: Optional[str] = None
    identifier: Optional[str] = None  # provider's name for the primary email
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    image_url: Optional[str] = None


class ProviderMembership(BaseModel):
    """An organization membership (``organizationMembership.*`` events and membership listings)."""
    id: Optional[str] = None
    organization: MembershipOrganization
    public_user_data: PublicUserData
    role: Optional[str] = None
    created_at: Optional[int] = None
    updated_at: Optional[int] = None


# ---------------------------------------------------------------------------
# Event envelopes
# ---------------------------------------------------------------------------

class UserEvent(BaseModel):
    type: Literal["user.created", "user.updated"]
    data: ProviderUser
    timestamp: Optional[int] = None


class OrganizationEvent(BaseModel):
    type: Literal["organization.created", "organization.updated"]
    data: ProviderOrganization
    timestamp: Optional[int] = None


class MembershipEvent(BaseModel):
    type: Literal[
        "organizationMembership.created",
        "organizationMembership.updated",
        "organizationMembership.deleted",
    ]
    data: ProviderMembership
    timestamp: Optional[int] = None


ProviderEvent = Annotated[
    Union[UserEvent, OrganizationEvent, MembershipEvent],
    Field(discriminator="type"),
]

provider_event_adapter: TypeAdapter[ProviderEvent] = TypeAdapter(ProviderEvent)

HANDLED_EVENT_TYPES: frozenset[str] = frozenset({
    "user.created",
    "user.updated",
    "organization.created",
    "organization.updated",
    "organizationMembership.created",
    "organizationMembership.updated",
    "organizationMembership.deleted",
})

# Deletion of the entity itself has no agreed handling yet; these are
# acknowledged and logged, never applied.
UNHANDLED_DELETION_TYPES: frozenset[str] = frozenset({
    "user.deleted",
    "organization.deleted",
})
