"""
Unit Tests for ApplicationService

Runs against an in-memory SQLite database (see conftest.py).

Usage:
    pytest backend/tests/test_application_service.py -v
"""

import os
import re
import sys
import uuid
from datetime import datetime

import pytest
from sqlalchemy import select, update

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from gap_portal.models.db.application import GrantApplication  # noqa: E402
from gap_portal.services.application_service import (  # noqa: E402
    ApplicationAlreadySubmittedError,
    ApplicationNotFoundError,
    ApplicationService,
    ApplicationValidationError,
    generate_application_id,
    validate_for_submission,
)

COMPLETE_CONTACT = {
    "firstName": "Ana",
    "lastName": "Cho",
    "email": "ana@example.org",
    "mobile": "+501 600-0000",
    "organizationName": "Blue Belize",
}


# ============================================================================
# PURE HELPERS
# ============================================================================


class TestGenerateApplicationId:
    def test_format(self):
        reference = generate_application_id(now=1760886000.123)
        assert re.fullmatch(r"APP-1760886000123-[A-Z0-9]{5}", reference)

    def test_suffix_varies(self):
        ids = {generate_application_id(now=0) for _ in range(20)}
        assert len(ids) > 1


class TestValidateForSubmission:
    def test_complete_record_passes(self):
        assert validate_for_submission(COMPLETE_CONTACT) == {}

    def test_every_missing_field_is_reported(self):
        assert validate_for_submission({}) == {
            "firstName": "First name is required",
            "lastName": "Last name is required",
            "email": "Valid email is required",
            "mobile": "Mobile number is required",
            "organizationName": "Organization name is required",
        }

    def test_whitespace_counts_as_missing(self):
        errors = validate_for_submission({**COMPLETE_CONTACT, "firstName": "   "})
        assert errors == {"firstName": "First name is required"}

    def test_malformed_email(self):
        errors = validate_for_submission({**COMPLETE_CONTACT, "email": "ana@"})
        assert errors == {"email": "Valid email is required"}


# ============================================================================
# PERSISTENCE
# ============================================================================


class TestApplicationService:
    async def test_create_generates_reference_and_splits_fields(self, session_factory):
        async with session_factory() as db:
            application = await ApplicationService.create(
                db, {"firstName": "Ana", "projectGoal": "Restore mangroves"}
            )
            await db.commit()

        assert application.application_id.startswith("APP-")
        assert application.first_name == "Ana"
        assert application.form_data == {"projectGoal": "Restore mangroves"}
        assert application.application_status == "draft"
        assert application.current_step == 1

    async def test_duplicate_reference_rejected(self, session_factory):
        async with session_factory() as db:
            await ApplicationService.create(db, {"applicationId": "APP-1-ABCDE"})
            with pytest.raises(ValueError):
                await ApplicationService.create(db, {"applicationId": "APP-1-ABCDE"})

    async def test_to_response_flattens_form_data(self, session_factory):
        async with session_factory() as db:
            application = await ApplicationService.create(
                db, {"email": "ana@example.org", "district": "Stann Creek"}
            )
            record = ApplicationService.to_response(application)

        assert record["email"] == "ana@example.org"
        assert record["district"] == "Stann Creek"
        assert record["applicationStatus"] == "draft"
        assert record["id"] == str(application.id)

    async def test_save_progress_merges_step_data(self, session_factory):
        async with session_factory() as db:
            application = await ApplicationService.create(db, {"firstName": "Ana"})
            await ApplicationService.save_progress(
                db, application.id, 3, [1, 2], {"projectGoalObjectives": "Protect reefs"}
            )
            saved = await ApplicationService.get(db, application.id)

        assert saved.current_step == 3
        assert saved.completed_steps == [1, 2]
        assert saved.first_name == "Ana"
        assert saved.form_data["projectGoalObjectives"] == "Protect reefs"
        assert saved.application_status == "draft"

    async def test_update_ignores_status_fields(self, session_factory):
        async with session_factory() as db:
            application = await ApplicationService.create(db, {})
            updated = await ApplicationService.update(
                db,
                application.id,
                {"applicationStatus": "submitted", "lastName": "Cho"},
            )

        assert updated.application_status == "draft"
        assert updated.last_name == "Cho"
        assert "applicationStatus" not in updated.form_data

    async def test_submit_then_resubmit(self, session_factory):
        async with session_factory() as db:
            application = await ApplicationService.create(db, COMPLETE_CONTACT)
            submitted = await ApplicationService.submit(db, application.id, {})

            assert submitted.application_status == "submitted"
            assert submitted.submitted_at is not None

            with pytest.raises(ApplicationAlreadySubmittedError):
                await ApplicationService.submit(db, application.id, {})

    async def test_submit_loses_to_concurrent_submitter(self, session_factory):
        stamp = datetime(2026, 10, 1, 12, 0)
        async with session_factory() as db:
            application = await ApplicationService.create(db, COMPLETE_CONTACT)
            # Another request commits first; this session still holds the draft.
            await db.execute(
                update(GrantApplication)
                .where(GrantApplication.id == application.id)
                .values(application_status="submitted", submitted_at=stamp)
                .execution_options(synchronize_session=False)
            )
            assert application.application_status == "draft"

            with pytest.raises(ApplicationAlreadySubmittedError):
                await ApplicationService.submit(db, application.id, {})

            stored = await db.scalar(
                select(GrantApplication.submitted_at).where(
                    GrantApplication.id == application.id
                )
            )

        assert stored.replace(tzinfo=None) == stamp

    async def test_submit_validates_merged_record(self, session_factory):
        async with session_factory() as db:
            application = await ApplicationService.create(db, {"firstName": "Ana"})
            with pytest.raises(ApplicationValidationError) as exc_info:
                await ApplicationService.submit(db, application.id, {"lastName": "Cho"})

        assert "firstName" not in exc_info.value.errors
        assert "lastName" not in exc_info.value.errors
        assert exc_info.value.errors["mobile"] == "Mobile number is required"

    async def test_list_by_status_newest_first(self, session_factory):
        async with session_factory() as db:
            first = await ApplicationService.create(db, {"firstName": "First"})
            second = await ApplicationService.create(db, {"firstName": "Second"})
            third = await ApplicationService.create(db, COMPLETE_CONTACT)
            await ApplicationService.submit(db, third.id, {})

            everything = await ApplicationService.list_applications(db)
            drafts = await ApplicationService.list_applications(db, status="draft")

        assert [a.id for a in everything] == [third.id, second.id, first.id]
        assert [a.id for a in drafts] == [second.id, first.id]

    async def test_delete(self, session_factory):
        async with session_factory() as db:
            application = await ApplicationService.create(db, {})
            await ApplicationService.delete(db, application.id)
            with pytest.raises(ApplicationNotFoundError):
                await ApplicationService.get(db, application.id)

    async def test_unknown_id(self, session_factory):
        async with session_factory() as db:
            with pytest.raises(ApplicationNotFoundError):
                await ApplicationService.get(db, uuid.uuid4())
