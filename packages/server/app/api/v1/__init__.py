"""
API v1 Router

Identity sync: provider webhooks in, client-triggered reconciliation.
"""

from fastapi import APIRouter
from . import sync, webhooks

router = APIRouter()

router.include_router(webhooks.router, prefix="/webhooks", tags=["Webhooks"])
router.include_router(sync.router, prefix="/sync", tags=["Sync"])


@router.get("/", tags=["API"])
async def api_root():
    """API root — returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/webhooks/clerk",
            "/sync/user",
            "/sync/organization",
        ],
    }
