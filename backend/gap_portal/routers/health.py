"""Health-check router."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from gap_portal import database
from gap_portal.settings import SmtpSettings, ZohoSettings

logger = logging.getLogger(__name__)
router = APIRouter(tags=["health"])


@router.get("/")
async def root():
    """Health check"""
    return {"status": "ok", "message": "GAP Portal API is running"}


@router.get("/api/health")
async def health_check():
    """Report which integrations are configured."""
    zoho_missing = ZohoSettings.from_env().missing()
    degraded = []
    if database.async_session_factory is None:
        degraded.append("database")
    if zoho_missing:
        degraded.append("zoho_creator")

    return {
        "status": "healthy" if not degraded else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "database": "configured" if database.async_session_factory else "missing",
            "zoho_creator": {
                "configured": not zoho_missing,
                "missing": zoho_missing or None,
            },
            "email": "smtp" if SmtpSettings.from_env().configured else "log_only",
        },
        "degraded": degraded or None,
    }
