"""SQLAlchemy 2.0 ORM models for the GAP portal.

Import all models here so Alembic's ``env.py`` can discover them via::

    from gap_portal.models.db import Base  # noqa: F401
"""

from gap_portal.models.db.base import Base, TimestampMixin  # noqa: F401
from gap_portal.models.db.application import GrantApplication  # noqa: F401
