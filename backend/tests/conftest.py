"""Shared fixtures: in-memory database, fake Zoho client and email service."""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from gap_portal.database import get_db  # noqa: E402
from gap_portal.deps import get_email_service, get_zoho_client  # noqa: E402
from gap_portal.main import app  # noqa: E402
from gap_portal.models.db import Base  # noqa: E402
from gap_portal.security import limiter  # noqa: E402
from gap_portal.services.email_service import EmailService  # noqa: E402
from gap_portal.services.zoho_service import ZohoCreatorClient, ZohoRecord  # noqa: E402


# ============================================================================
# FAKES
# ============================================================================


def make_zoho_client(record_id: str = "4089000000123456") -> MagicMock:
    """ZohoCreatorClient double whose async methods are AsyncMocks."""
    client = MagicMock(spec=ZohoCreatorClient)
    client.create_concept_record.return_value = ZohoRecord(
        record_id=record_id,
        message="Concept paper created successfully in Zoho Creator",
    )
    client.create_proposal_record.return_value = ZohoRecord(record_id=record_id)
    client.upload_file.return_value = {"code": 3000}
    client.test_connection.return_value = True
    return client


def make_email_service(sent: bool = True) -> MagicMock:
    service = MagicMock(spec=EmailService)
    service.send_eligibility_notification = AsyncMock(return_value=sent)
    service.send_email = AsyncMock(return_value=sent)
    return service


@pytest.fixture
def zoho_client() -> MagicMock:
    return make_zoho_client()


@pytest.fixture
def email_service() -> MagicMock:
    return make_email_service()


# ============================================================================
# DATABASE + API CLIENT
# ============================================================================


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def api_client(session_factory, zoho_client, email_service):
    """httpx client bound to the app with the database and integrations faked."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_zoho_client] = lambda: zoho_client
    app.dependency_overrides[get_email_service] = lambda: email_service
    limiter.enabled = False

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
    limiter.enabled = True
