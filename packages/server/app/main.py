"""
Meridian Identity Sync API Server

Entry point for the FastAPI application.
"""

from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.core.config import Settings, get_settings
from app.core.database import create_engine, create_session_factory
from app.core.logging import configure_logging
from app.core.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from app.core.provider import ProviderClient
from app.api.v1 import router as api_v1_router

log = structlog.get_logger()


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[sessionmaker] = None,
    provider_client: Optional[ProviderClient] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Anything not passed in is built from ``settings``; tests pass an
    in-memory session factory and a fake provider client.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    engine = None
    if session_factory is None:
        engine = create_engine(settings.database_url, echo=settings.debug, pool_pre_ping=True)
        session_factory = create_session_factory(engine)
    if provider_client is None:
        provider_client = ProviderClient(
            settings.clerk_api_url,
            settings.clerk_secret_key,
            timeout=settings.provider_timeout_seconds,
        )

    app = FastAPI(
        title="Meridian Identity Sync",
        description="Keeps profiles, organizations and memberships in step with the identity provider.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.provider_client = provider_client

    # Middleware (last added runs outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1")

    @app.get("/health", tags=["System"])
    async def health_check():
        """Health check endpoint for liveness probes."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check(request: Request):
        """Readiness check endpoint: the datastore answers a trivial query."""
        try:
            async with request.app.state.session_factory() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            log.warning("server.not_ready", error=type(exc).__name__)
            raise HTTPException(status_code=503, detail="Datastore unavailable")
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info(
            "server.starting",
            environment=settings.environment,
            webhook_verification=settings.webhook_verification_enabled,
        )

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("server.shutting_down")
        await provider_client.close()
        if engine is not None:
            await engine.dispose()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(app, host=_settings.host, port=_settings.port, log_level=_settings.log_level)
