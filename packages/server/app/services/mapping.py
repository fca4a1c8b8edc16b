"""
Provider payload → reconciler arguments.

Pure functions; no I/O. Webhook deliveries and live API reads both go
through here, which is what makes the two sync paths converge.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Optional

from meridian_shared.schemas.common import DEFAULT_ROLE, ROLE_VALUES, SIZE_VALUES
from meridian_shared.schemas.events import (
    ProviderMembership,
    ProviderOrganization,
    ProviderUser,
)

PLACEHOLDER_EMAIL_DOMAIN = "placeholder.local"

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_role(raw: Optional[str]) -> str:
    """Strip the namespace prefix (``org:admin`` → ``admin``) and validate.

    Unknown or empty roles fall back to ``member``.
    """
    if not raw:
        return DEFAULT_ROLE.value
    role = raw.rsplit(":", 1)[-1].strip().lower()
    if role not in ROLE_VALUES:
        return DEFAULT_ROLE.value
    return role


def derive_slug(name: str) -> str:
    """``"Acme Corp!"`` → ``"acme-corp"``."""
    slug = _NON_ALNUM.sub("-", name.lower()).strip("-")
    return slug or "org"


def full_name(first: Optional[str], last: Optional[str]) -> Optional[str]:
    parts = [p.strip() for p in (first, last) if p and p.strip()]
    return " ".join(parts) or None


def placeholder_email(user_id: str) -> str:
    return f"{user_id}@{PLACEHOLDER_EMAIL_DOMAIN}"


def from_epoch_ms(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _metadata_str(metadata: dict[str, Any], key: str) -> Optional[str]:
    value = metadata.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def profile_fields(user: ProviderUser) -> dict[str, Any]:
    """Arguments for ``Reconciler.upsert_profile``. The first email is authoritative."""
    primary = user.email_addresses[0] if user.email_addresses else None
    verified = bool(
        primary and primary.verification and primary.verification.status == "verified"
    )
    return {
        "profile_id": user.id,
        "email": primary.email_address if primary else placeholder_email(user.id),
        "full_name": full_name(user.first_name, user.last_name),
        "avatar_url": user.image_url,
        "department": _metadata_str(user.public_metadata, "department"),
        "is_verified": verified,
        "source_updated_at": from_epoch_ms(user.updated_at),
    }


def organization_fields(org: ProviderOrganization) -> dict[str, Any]:
    """Arguments for ``Reconciler.upsert_organization``."""
    size = _metadata_str(org.public_metadata, "size")
    return {
        "organization_id": org.id,
        "name": org.name,
        "slug": org.slug or None,
        "industry": _metadata_str(org.public_metadata, "industry"),
        "size": size.lower() if size and size.lower() in SIZE_VALUES else None,
        "website": _metadata_str(org.public_metadata, "website"),
        "created_at": from_epoch_ms(org.created_at),
        "source_updated_at": from_epoch_ms(org.updated_at),
    }


def membership_fields(membership: ProviderMembership) -> dict[str, Any]:
    """Arguments for ``Reconciler.upsert_membership``."""
    user = membership.public_user_data
    user_email = user.email
    if not user_email and user.identifier and "@" in user.identifier:
        user_email = user.identifier
    return {
        "organization_id": membership.organization.id,
        "user_id": user.user_id,
        "role": normalize_role(membership.role),
        "email": user_email or placeholder_email(user.user_id),
        "full_name": full_name(user.first_name, user.last_name),
        "organization_name": membership.organization.name,
        "organization_slug": membership.organization.slug or None,
        "source_updated_at": from_epoch_ms(membership.updated_at),
    }
