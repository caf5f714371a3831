"""
GAP Portal API - FastAPI backend for grant proposal and concept paper submissions
"""

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gap_portal import __version__
from gap_portal.database import dispose_database
from gap_portal.routers import applications, concept, health
from gap_portal.security import setup_security

load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_PRODUCTION_ORIGIN = "https://gap-portal.org"
DEFAULT_DEVELOPMENT_ORIGINS = "http://localhost:3000,http://localhost:5173"


# =============================================================================
# CORS Configuration
# =============================================================================


def resolve_allowed_origins(environment: str, raw: str | None) -> list[str]:
    """Origins allowed to call the API.

    Production accepts HTTPS origins only and never localhost.
    """
    if environment == "production":
        origins = []
        for origin in (raw or DEFAULT_PRODUCTION_ORIGIN).split(","):
            origin = origin.strip()
            if not origin:
                continue
            if not origin.startswith("https://"):
                logger.warning("[CORS] Rejecting non-HTTPS origin in production: %s", origin)
                continue
            if "localhost" in origin or "127.0.0.1" in origin:
                logger.warning("[CORS] Rejecting localhost origin in production: %s", origin)
                continue
            origins.append(origin)
        return origins or [DEFAULT_PRODUCTION_ORIGIN]

    return [
        origin.strip()
        for origin in (raw or DEFAULT_DEVELOPMENT_ORIGINS).split(",")
        if origin.strip()
    ]


ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
ALLOWED_ORIGINS = resolve_allowed_origins(ENVIRONMENT, os.getenv("ALLOWED_ORIGINS"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("GAP Portal API started (environment=%s)", ENVIRONMENT)
    yield
    await dispose_database()
    logger.info("GAP Portal API shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="GAP Portal API",
        description="Grant proposal and concept paper submission service",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-Requested-With", "X-Request-ID"],
    )
    # Must come after CORS (middleware order matters)
    setup_security(app, ALLOWED_ORIGINS)

    app.include_router(health.router)
    app.include_router(applications.router)
    app.include_router(concept.router)

    logger.info("[CORS] Environment: %s, allowed origins: %s", ENVIRONMENT, ALLOWED_ORIGINS)
    return app


app = create_app()
