"""Async access to the application store.

The engine is built from ``DATABASE_URL`` when the module is imported.  The
API still starts without it: the Zoho endpoints keep working and any route
that needs the ``applications`` table fails from :func:`get_db`.

Routers take a session per request::

    @router.get("/applications")
    async def list_applications(db: AsyncSession = Depends(get_db)):
        ...
"""

import logging
import os
from collections.abc import AsyncGenerator
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

load_dotenv()

logger = logging.getLogger(__name__)

_ASYNC_DRIVER_PREFIX = "postgresql+asyncpg://"


class Base(DeclarativeBase):
    """Declarative base of the portal's ORM models."""


engine: Optional[AsyncEngine] = None
async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def normalize_database_url(url: str) -> str:
    """Force the asyncpg driver on bare ``postgres://``/``postgresql://`` URLs."""
    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return _ASYNC_DRIVER_PREFIX + url[len(prefix):]
    return url


def configure_database(url: Optional[str], echo: bool = False) -> None:
    """(Re)build the engine and session factory; a blank URL disables both."""
    global engine, async_session_factory

    if not url:
        engine = None
        async_session_factory = None
        logger.warning("DATABASE_URL not set, application drafts cannot be stored")
        return

    engine = create_async_engine(
        normalize_database_url(url),
        pool_pre_ping=True,
        pool_recycle=300,
        echo=echo,
    )
    async_session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    logger.info(
        "Application store at %s", engine.url.render_as_string(hide_password=True)
    )


async def dispose_database() -> None:
    if engine is not None:
        await engine.dispose()
        logger.info("Database connections closed")


configure_database(
    os.getenv("DATABASE_URL"),
    echo=os.getenv("SQLALCHEMY_ECHO", "").lower() == "true",
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """One session per request; committed on success, rolled back on error."""
    if async_session_factory is None:
        raise RuntimeError(
            "Database not configured. Set DATABASE_URL environment variable."
        )
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
