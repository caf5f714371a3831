"""Business logic for proposal application drafts and submission."""

import logging
import random
import string
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gap_portal.models.concept_models import is_valid_email
from gap_portal.models.db.application import (
    STATUS_DRAFT,
    STATUS_SUBMITTED,
    GrantApplication,
)

logger = logging.getLogger(__name__)

# camelCase form key -> dedicated column
COLUMN_FIELDS: Dict[str, str] = {
    "organizationName": "organization_name",
    "firstName": "first_name",
    "lastName": "last_name",
    "email": "email",
    "mobile": "mobile",
    "projectTitle": "project_title",
}

# Keys owned by the server; never stored in form_data from a request body.
RESERVED_FIELDS = frozenset(
    {
        "id",
        "applicationId",
        "applicationStatus",
        "submittedAt",
        "createdAt",
        "updatedAt",
        "currentStep",
        "completedSteps",
        "stepData",
    }
)

# (field, message) checked on final submission, in order
REQUIRED_ON_SUBMIT = (
    ("firstName", "First name is required"),
    ("lastName", "Last name is required"),
    ("email", "Valid email is required"),
    ("mobile", "Mobile number is required"),
    ("organizationName", "Organization name is required"),
)


class ApplicationNotFoundError(ValueError):
    pass


class ApplicationAlreadySubmittedError(ValueError):
    pass


class ApplicationValidationError(ValueError):
    """Final submission is missing required fields."""

    def __init__(self, errors: Dict[str, str]) -> None:
        super().__init__("; ".join(errors.values()))
        self.errors = errors


def generate_application_id(now: Optional[float] = None) -> str:
    """``APP-<epoch millis>-<5 uppercase alphanumerics>``."""
    millis = int((now if now is not None else time.time()) * 1000)
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=5))
    return f"APP-{millis}-{suffix}"


def validate_for_submission(record: Mapping[str, Any]) -> Dict[str, str]:
    """Return ``{field: message}`` for every failed required-field rule."""
    errors: Dict[str, str] = {}
    for field_name, message in REQUIRED_ON_SUBMIT:
        value = record.get(field_name)
        if isinstance(value, str):
            value = value.strip()
        if field_name == "email":
            if not is_valid_email(value):
                errors[field_name] = message
        elif not value:
            errors[field_name] = message
    return errors


class ApplicationService:
    """Service layer for grant application operations."""

    # ------------------------------------------------------------------
    # Serialisation
    # ------------------------------------------------------------------

    @staticmethod
    def to_response(application: GrantApplication) -> Dict[str, Any]:
        """Flatten an application into the camelCase shape the form uses."""
        record: Dict[str, Any] = dict(application.form_data or {})
        for key, column in COLUMN_FIELDS.items():
            record[key] = getattr(application, column)
        record.update(
            {
                "id": str(application.id),
                "applicationId": application.application_id,
                "currentStep": application.current_step,
                "completedSteps": list(application.completed_steps or []),
                "applicationStatus": application.application_status,
                "createdAt": application.created_at,
                "updatedAt": application.updated_at,
                "submittedAt": application.submitted_at,
            }
        )
        return record

    @staticmethod
    def _apply_fields(application: GrantApplication, values: Mapping[str, Any]) -> None:
        """Write known keys to their columns and everything else to form_data."""
        form_data = dict(application.form_data or {})
        for key, value in values.items():
            if key in RESERVED_FIELDS:
                continue
            column = COLUMN_FIELDS.get(key)
            if column:
                setattr(application, column, value)
            else:
                form_data[key] = value
        # Reassign so the JSON column is flagged dirty.
        application.form_data = form_data

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    async def get(db: AsyncSession, application_id: UUID) -> GrantApplication:
        """Fetch one application.

        Raises:
            ApplicationNotFoundError: If no application has this id.
        """
        result = await db.execute(
            select(GrantApplication).where(GrantApplication.id == application_id)
        )
        application = result.scalar_one_or_none()
        if application is None:
            raise ApplicationNotFoundError("Application not found")
        return application

    @staticmethod
    async def list_applications(
        db: AsyncSession, status: Optional[str] = None
    ) -> List[GrantApplication]:
        """All applications (optionally one status), newest first."""
        query = select(GrantApplication)
        if status is not None:
            query = query.where(GrantApplication.application_status == status)
        query = query.order_by(GrantApplication.created_at.desc())
        result = await db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @staticmethod
    async def create(db: AsyncSession, values: Mapping[str, Any]) -> GrantApplication:
        """Create a draft from the first save of the form.

        Args:
            db: Async database session.
            values: camelCase form values; ``applicationId`` is generated
                when absent.

        Returns:
            The new GrantApplication.
        """
        reference = values.get("applicationId") or generate_application_id()
        existing = await db.execute(
            select(GrantApplication.id).where(
                GrantApplication.application_id == reference
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ValueError(f"Application {reference} already exists")

        application = GrantApplication(
            application_id=reference,
            current_step=values.get("currentStep") or 1,
            completed_steps=list(values.get("completedSteps") or []),
            application_status=STATUS_DRAFT,
            form_data={},
        )
        ApplicationService._apply_fields(application, values)
        db.add(application)
        await db.flush()
        await db.refresh(application)
        logger.info("Created application %s", application.application_id)
        return application

    @staticmethod
    async def update(
        db: AsyncSession, application_id: UUID, values: Mapping[str, Any]
    ) -> GrantApplication:
        """Overwrite form fields; status fields in ``values`` are ignored."""
        application = await ApplicationService.get(db, application_id)
        ApplicationService._apply_fields(application, values)
        if values.get("currentStep"):
            application.current_step = values["currentStep"]
        if values.get("completedSteps") is not None:
            application.completed_steps = list(values["completedSteps"])
        await db.flush()
        await db.refresh(application)
        return application

    @staticmethod
    async def save_progress(
        db: AsyncSession,
        application_id: UUID,
        current_step: int,
        completed_steps: List[int],
        step_data: Mapping[str, Any],
    ) -> GrantApplication:
        """Persist the fields of one step plus the wizard position.

        Never changes ``applicationStatus`` or ``submittedAt``.
        """
        application = await ApplicationService.get(db, application_id)
        ApplicationService._apply_fields(application, step_data)
        application.current_step = current_step
        application.completed_steps = list(completed_steps)
        await db.flush()
        await db.refresh(application)
        logger.debug(
            "Saved progress for %s: step %d, completed %s",
            application.application_id,
            current_step,
            completed_steps,
        )
        return application

    @staticmethod
    async def submit(
        db: AsyncSession, application_id: UUID, values: Mapping[str, Any]
    ) -> GrantApplication:
        """Merge final values, validate the full record and mark it submitted.

        Raises:
            ApplicationNotFoundError: Unknown id.
            ApplicationAlreadySubmittedError: Status is already ``submitted``.
            ApplicationValidationError: Required fields are missing/invalid.
        """
        application = await ApplicationService.get(db, application_id)
        if application.application_status == STATUS_SUBMITTED:
            raise ApplicationAlreadySubmittedError(
                f"Application {application.application_id} was already submitted"
            )

        ApplicationService._apply_fields(application, values)
        errors = validate_for_submission(ApplicationService.to_response(application))
        if errors:
            raise ApplicationValidationError(errors)

        # Conditional on the stored status so concurrent submits stamp once.
        result = await db.execute(
            update(GrantApplication)
            .where(
                GrantApplication.id == application.id,
                GrantApplication.application_status != STATUS_SUBMITTED,
            )
            .values(
                application_status=STATUS_SUBMITTED,
                submitted_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ApplicationAlreadySubmittedError(
                f"Application {application.application_id} was already submitted"
            )
        await db.refresh(application)
        logger.info("Application %s submitted", application.application_id)
        return application

    @staticmethod
    async def delete(db: AsyncSession, application_id: UUID) -> None:
        application = await ApplicationService.get(db, application_id)
        await db.delete(application)
        await db.flush()
        logger.info("Deleted application %s", application.application_id)
