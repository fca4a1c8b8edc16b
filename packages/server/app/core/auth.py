"""
Session authentication for client-triggered sync calls.

The identity provider issues and refreshes sessions; this module only
verifies the session JWT and extracts who the caller is and which
organization is active. Identity is never taken from request bodies.

Supports:
- Bearer token in the Authorization header
- The provider's ``__session`` cookie
- Static verification key or JWKS discovery
- Classic (``org_id``/``org_role``) and compact (``o.id``/``o.rol``) org claims
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from app.core.config import Settings, get_app_settings

log = structlog.get_logger()

SESSION_COOKIE = "__session"


class SessionContext:
    """Container for the authenticated caller and their active org."""

    def __init__(
        self,
        user_id: str,
        org_id: Optional[str] = None,
        org_role: Optional[str] = None,
        org_slug: Optional[str] = None,
    ):
        self.user_id = user_id
        self.org_id = org_id
        self.org_role = org_role
        self.org_slug = org_slug


# ---------------------------------------------------------------------------
# Token verification
# ---------------------------------------------------------------------------

@lru_cache
def _jwks_client(url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(url)


def _verification_key(token: str, settings: Settings) -> Any:
    if settings.session_jwt_key:
        return settings.session_jwt_key
    if settings.session_jwks_url:
        return _jwks_client(settings.session_jwks_url).get_signing_key_from_jwt(token).key
    raise jwt.InvalidTokenError("No session verification key configured")


def decode_session_token(token: str, settings: Settings) -> SessionContext:
    """Verify a provider session JWT. Raises jwt.PyJWTError on failure.

    May block on a JWKS fetch; call from a worker thread in async code.
    """
    key = _verification_key(token, settings)
    claims = jwt.decode(
        token,
        key,
        algorithms=settings.session_jwt_algorithms,
        options={"require": ["sub", "exp"]},
    )

    if settings.authorized_parties and claims.get("azp") not in settings.authorized_parties:
        raise jwt.InvalidTokenError("Unauthorized party")

    compact = claims.get("o") if isinstance(claims.get("o"), dict) else {}
    return SessionContext(
        user_id=claims["sub"],
        org_id=claims.get("org_id") or compact.get("id"),
        org_role=claims.get("org_role") or compact.get("rol"),
        org_slug=claims.get("org_slug") or compact.get("slg"),
    )


def _extract_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization", "")
    if authorization.startswith("Bearer "):
        token = authorization[7:].strip()
        if token:
            return token
    return request.cookies.get(SESSION_COOKIE) or None


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

async def get_session_context(
    request: Request,
    settings: Settings = Depends(get_app_settings),
) -> SessionContext:
    """Main authentication dependency. Runs before any datastore access."""
    token = _extract_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    try:
        ctx = await run_in_threadpool(decode_session_token, token, settings)
    except jwt.PyJWTError as exc:
        log.info("auth.session_rejected", reason=type(exc).__name__)
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    structlog.contextvars.bind_contextvars(user_id=ctx.user_id)
    return ctx


async def require_active_org(
    ctx: SessionContext = Depends(get_session_context),
) -> SessionContext:
    """Requires an active organization in the session."""
    if not ctx.org_id:
        raise HTTPException(status_code=403, detail="An active organization is required")
    return ctx
