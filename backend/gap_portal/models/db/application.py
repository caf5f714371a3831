"""GrantApplication ORM model.

Maps to the ``applications`` table from migration ``0001_applications``.
One row per applicant submission attempt, from first draft save through
final submission.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from gap_portal.models.db.base import Base, JSONType, TimestampMixin

__all__ = ["GrantApplication", "STATUS_DRAFT", "STATUS_SUBMITTED"]

STATUS_DRAFT = "draft"
STATUS_SUBMITTED = "submitted"


class GrantApplication(TimestampMixin, Base):
    __tablename__ = "applications"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # Human-readable reference shown to applicants (APP-<millis>-<suffix>)
    application_id: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    # Organisation / contact
    organization_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    mobile: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Every other per-step field, flattened
    form_data: Mapped[dict] = mapped_column(JSONType, default=dict, nullable=False)

    # Wizard bookkeeping
    current_step: Mapped[int] = mapped_column(
        Integer, default=1, server_default="1", nullable=False
    )
    completed_steps: Mapped[list] = mapped_column(
        JSONType, default=list, nullable=False
    )

    # Status
    application_status: Mapped[str] = mapped_column(
        Text, default=STATUS_DRAFT, server_default=STATUS_DRAFT, nullable=False
    )
    submitted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
