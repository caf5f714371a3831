"""Shared dependencies for the API routers.

Centralises the database session dependency, the Zoho Creator client and
email service singletons, the concept submission service and the
rate-limiter reference, so every router can ``from gap_portal.deps import ...``
without importing ``main``.  Tests replace the singletons through
``app.dependency_overrides``.
"""

import logging
from typing import Optional

from fastapi import Depends

from gap_portal.database import get_db
from gap_portal.security import limiter
from gap_portal.services.email_service import EmailService
from gap_portal.services.submission_service import ConceptSubmissionService
from gap_portal.services.zoho_service import ZohoCreatorClient

logger = logging.getLogger(__name__)

__all__ = [
    "get_db",
    "get_zoho_client",
    "get_email_service",
    "get_concept_service",
    "limiter",
    "_safe_error",
]

# ---------------------------------------------------------------------------
# Singletons (the token cache lives on the Zoho client)
# ---------------------------------------------------------------------------
_zoho_client: Optional[ZohoCreatorClient] = None
_email_service: Optional[EmailService] = None


def get_zoho_client() -> ZohoCreatorClient:
    global _zoho_client
    if _zoho_client is None:
        _zoho_client = ZohoCreatorClient()
        missing = _zoho_client.settings.missing()
        if missing:
            logger.warning("Zoho Creator settings missing: %s", ", ".join(missing))
    return _zoho_client


def get_email_service() -> EmailService:
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service


def get_concept_service(
    zoho_client: ZohoCreatorClient = Depends(get_zoho_client),
    email_service: EmailService = Depends(get_email_service),
) -> ConceptSubmissionService:
    return ConceptSubmissionService(zoho_client, email_service)


# ---------------------------------------------------------------------------
# Small utility helpers
# ---------------------------------------------------------------------------


def _safe_error(operation: str, e: Exception) -> str:
    """Log the full exception but return a safe message without internal details."""
    logger.exception("Error during %s: %s", operation, e)
    return f"{operation} failed. Please try again or contact support."
