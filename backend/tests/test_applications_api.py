"""
API Tests for the applications router

Exercises the proposal endpoints through the ASGI app with the database
(in-memory SQLite) and the Zoho client faked; see conftest.py.

Usage:
    pytest backend/tests/test_applications_api.py -v
"""

import os
import sys
import uuid

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from gap_portal.services.zoho_service import ZohoAPIError  # noqa: E402

COMPLETE_CONTACT = {
    "firstName": "Ana",
    "lastName": "Cho",
    "email": "ana@example.org",
    "mobile": "+501 600-0000",
    "organizationName": "Blue Belize",
}


async def create_application(api_client, **values):
    response = await api_client.post("/api/applications", json=values)
    assert response.status_code == 201, response.text
    return response.json()


# ============================================================================
# HEALTH
# ============================================================================


class TestHealth:
    async def test_root(self, api_client):
        response = await api_client.get("/")
        assert response.json() == {"status": "ok", "message": "GAP Portal API is running"}

    async def test_health_reports_services(self, api_client):
        response = await api_client.get("/api/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] in ("healthy", "degraded")
        assert "zoho_creator" in body["services"]

    async def test_security_headers(self, api_client):
        response = await api_client.get("/", headers={"X-Request-ID": "req-12345678"})
        assert response.headers["X-Request-ID"] == "req-12345678"
        assert response.headers["X-Frame-Options"] == "DENY"
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_deps_exports_only_what_it_defines(self):
        from gap_portal import deps

        assert set(deps.__all__) == {
            "get_db",
            "get_zoho_client",
            "get_email_service",
            "get_concept_service",
            "limiter",
            "_safe_error",
        }
        assert all(hasattr(deps, name) for name in deps.__all__)
        assert not hasattr(deps, "log_security_event")


# ============================================================================
# CRUD
# ============================================================================


class TestApplicationCrud:
    async def test_create_draft(self, api_client):
        body = await create_application(api_client, firstName="Ana", district="Belize")

        assert body["applicationId"].startswith("APP-")
        assert body["applicationStatus"] == "draft"
        assert body["firstName"] == "Ana"
        assert body["district"] == "Belize"
        assert body["currentStep"] == 1
        assert body["submittedAt"] is None
        uuid.UUID(body["id"])

    async def test_create_rejects_out_of_range_steps(self, api_client):
        response = await api_client.post(
            "/api/applications", json={"completedSteps": [1, 12]}
        )
        assert response.status_code == 422

    async def test_get_unknown_application(self, api_client):
        response = await api_client.get(f"/api/applications/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["detail"] == "Application not found"

    async def test_list_returns_summaries(self, api_client):
        created = await create_application(api_client, projectTitle="Reef Watch")

        response = await api_client.get("/api/applications")

        assert response.status_code == 200
        [summary] = response.json()
        assert summary["id"] == created["id"]
        assert summary["projectTitle"] == "Reef Watch"
        assert summary["applicationStatus"] == "draft"

    async def test_update_ignores_status(self, api_client):
        created = await create_application(api_client)

        response = await api_client.put(
            f"/api/applications/{created['id']}",
            json={"applicationStatus": "submitted", "mobile": "+501 600-0000"},
        )

        assert response.status_code == 200
        assert response.json()["applicationStatus"] == "draft"
        assert response.json()["mobile"] == "+501 600-0000"

    async def test_delete(self, api_client):
        created = await create_application(api_client)

        response = await api_client.delete(f"/api/applications/{created['id']}")
        assert response.status_code == 200
        assert response.json() == {"message": "Application deleted successfully"}

        missing = await api_client.get(f"/api/applications/{created['id']}")
        assert missing.status_code == 404


# ============================================================================
# PROGRESS
# ============================================================================


class TestProgress:
    async def test_save_progress_then_resume(self, api_client):
        created = await create_application(api_client, firstName="Ana")

        response = await api_client.put(
            f"/api/applications/{created['id']}/progress",
            json={
                "currentStep": 3,
                "completedSteps": [1, 2],
                "stepData": {"projectGoalObjectives": "Protect reefs"},
            },
        )
        assert response.status_code == 200

        resumed = (await api_client.get(f"/api/applications/{created['id']}")).json()
        assert resumed["currentStep"] == 3
        assert resumed["completedSteps"] == [1, 2]
        assert resumed["projectGoalObjectives"] == "Protect reefs"
        assert resumed["firstName"] == "Ana"
        assert resumed["applicationStatus"] == "draft"

    async def test_invalid_completed_step(self, api_client):
        created = await create_application(api_client)

        response = await api_client.put(
            f"/api/applications/{created['id']}/progress",
            json={"currentStep": 2, "completedSteps": [1, 10]},
        )
        assert response.status_code == 422

    async def test_step_rules_are_enforced(self, api_client):
        created = await create_application(api_client)

        response = await api_client.put(
            f"/api/applications/{created['id']}/progress",
            json={
                "currentStep": 1,
                "stepData": {"contactEmail": "not-an-email"},
            },
        )

        assert response.status_code == 422
        assert response.json()["detail"] == {
            "message": "Error saving progress",
            "errors": {"contactEmail": "Invalid email"},
        }

    async def test_progress_on_unknown_application(self, api_client):
        response = await api_client.put(
            f"/api/applications/{uuid.uuid4()}/progress", json={"currentStep": 2}
        )
        assert response.status_code == 404


# ============================================================================
# SUBMISSION
# ============================================================================


class TestSubmit:
    async def test_submit_marks_submitted_and_creates_zoho_record(
        self, api_client, zoho_client
    ):
        created = await create_application(api_client, **COMPLETE_CONTACT)

        response = await api_client.put(
            f"/api/applications/{created['id']}/submit", json={"projectTitle": "Reef"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["applicationStatus"] == "submitted"
        assert body["submittedAt"] is not None
        assert body["zohoSuccess"] is True
        assert body["zohoRecordId"] == "4089000000123456"
        zoho_client.create_proposal_record.assert_awaited_once()

    async def test_resubmit_conflicts(self, api_client):
        created = await create_application(api_client, **COMPLETE_CONTACT)
        url = f"/api/applications/{created['id']}/submit"

        assert (await api_client.put(url, json={})).status_code == 200
        again = await api_client.put(url, json={})

        assert again.status_code == 409

    async def test_missing_fields(self, api_client):
        created = await create_application(api_client, firstName="Ana")

        response = await api_client.put(
            f"/api/applications/{created['id']}/submit", json={}
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["message"] == "Error submitting application"
        assert detail["errors"]["email"] == "Valid email is required"
        assert "firstName" not in detail["errors"]

        still_draft = await api_client.get(f"/api/applications/{created['id']}")
        assert still_draft.json()["applicationStatus"] == "draft"

    async def test_zoho_failure_does_not_undo_submission(self, api_client, zoho_client):
        zoho_client.create_proposal_record.side_effect = ZohoAPIError("down", 503)
        created = await create_application(api_client, **COMPLETE_CONTACT)

        response = await api_client.put(
            f"/api/applications/{created['id']}/submit", json={}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["applicationStatus"] == "submitted"
        assert body["zohoSuccess"] is False
        assert body["zohoError"] == "Failed to create Zoho Creator record"

    async def test_status_filter(self, api_client):
        draft = await create_application(api_client)
        submitted = await create_application(api_client, **COMPLETE_CONTACT)
        await api_client.put(f"/api/applications/{submitted['id']}/submit", json={})

        response = await api_client.get("/api/applications/status/submitted")

        assert [a["id"] for a in response.json()] == [submitted["id"]]
        drafts = (await api_client.get("/api/applications/status/draft")).json()
        assert [a["id"] for a in drafts] == [draft["id"]]


# ============================================================================
# ZOHO ENDPOINTS
# ============================================================================


class TestZohoEndpoints:
    async def test_connection_check(self, api_client):
        response = await api_client.get("/api/applications/zoho/test")
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Zoho connection successful",
            "hasAccessToken": True,
        }

    async def test_connection_failure(self, api_client, zoho_client):
        zoho_client.test_connection.side_effect = ZohoAPIError(
            "Failed to get access token: invalid_code", 400
        )
        response = await api_client.get("/api/applications/zoho/test")
        assert response.status_code == 500
        assert response.json()["success"] is False

    async def test_create_proposal_record(self, api_client):
        response = await api_client.post(
            "/api/applications/zoho/create",
            json={
                "projectTitle": "Mangroves",
                "contactName": "Ana Cho",
                "email": "ana@example.org",
            },
        )
        assert response.status_code == 201
        assert response.json()["data"]["recordId"] == "4089000000123456"

    async def test_create_proposal_record_requires_fields(self, api_client, zoho_client):
        response = await api_client.post(
            "/api/applications/zoho/create", json={"projectTitle": "Mangroves"}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == (
            "Missing required fields: projectTitle, contactName, email"
        )
        zoho_client.create_proposal_record.assert_not_awaited()

    async def test_create_proposal_record_crm_error(self, api_client, zoho_client):
        payload = {"code": 3002, "error": {"Email": "Invalid"}}
        zoho_client.create_proposal_record.side_effect = ZohoAPIError(
            "Zoho Creator validation failed: Invalid", 200, payload
        )
        response = await api_client.post(
            "/api/applications/zoho/create",
            json={"projectTitle": "M", "contactName": "A", "email": "a@b.org"},
        )
        assert response.status_code == 500
        assert response.json() == {
            "success": False,
            "message": "Error creating record in Zoho Creator",
            "error": payload,
        }
