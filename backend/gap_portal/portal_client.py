"""Async client for the GAP portal API, used by the form wizards.

Wraps the ``/api/applications`` endpoints with ``aiohttp`` and ties them to
:class:`~gap_portal.wizard_state.StepWizard`: progress saves also refresh the
local draft, and a successful submission clears it.
"""

import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

import aiohttp

from gap_portal.services.submission_service import AttachmentFile
from gap_portal.wizard_state import StepValidationError, StepWizard

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000/api"
DEFAULT_TIMEOUT = 60


class PortalAPIError(Exception):
    """The API answered with an error status."""

    def __init__(self, status: int, detail: Any) -> None:
        message = detail
        if isinstance(detail, dict):
            message = detail.get("message") or detail.get("detail")
        super().__init__(f"HTTP {status}: {message}")
        self.status = status
        self.detail = detail


class PortalClient:
    """
    Thin client of the portal API.

    Use as an async context manager so the HTTP session is closed::

        async with PortalClient("https://gap-portal.org/api") as client:
            application = await client.create_application({"firstName": "Ana"})
    """

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "PortalClient":
        self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.base_url}{path}"
        async with self.session.request(method, url, **kwargs) as response:
            try:
                body = await response.json(content_type=None)
            except ValueError:
                body = {"message": await response.text()}
            if response.status >= 400:
                logger.warning("%s %s failed with HTTP %d", method, path, response.status)
                raise PortalAPIError(response.status, body)
            return body

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    async def list_applications(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        if status:
            return await self._request("GET", f"/applications/status/{status}")
        return await self._request("GET", "/applications")

    async def get_application(self, application_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/applications/{application_id}")

    async def create_application(self, values: Mapping[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/applications", json=dict(values))

    async def update_application(
        self, application_id: str, values: Mapping[str, Any]
    ) -> Dict[str, Any]:
        return await self._request(
            "PUT", f"/applications/{application_id}", json=dict(values)
        )

    async def save_progress(
        self, application_id: str, payload: Mapping[str, Any]
    ) -> Dict[str, Any]:
        return await self._request(
            "PUT", f"/applications/{application_id}/progress", json=dict(payload)
        )

    async def submit_application(
        self, application_id: str, values: Mapping[str, Any]
    ) -> Dict[str, Any]:
        return await self._request(
            "PUT", f"/applications/{application_id}/submit", json=dict(values)
        )

    async def delete_application(self, application_id: str) -> Dict[str, Any]:
        return await self._request("DELETE", f"/applications/{application_id}")

    async def test_zoho_connection(self) -> Dict[str, Any]:
        return await self._request("GET", "/applications/zoho/test")

    # ------------------------------------------------------------------
    # Concept papers
    # ------------------------------------------------------------------

    async def submit_concept(
        self,
        concept: Mapping[str, Any],
        attachments: Optional[Sequence[AttachmentFile]] = None,
    ) -> Dict[str, Any]:
        """JSON submission, or multipart when there are attachments."""
        if not attachments:
            return await self._request(
                "POST", "/applications/concept/zoho/create", json=dict(concept)
            )
        form = aiohttp.FormData()
        form.add_field("data", json.dumps(dict(concept), default=str))
        for attachment in attachments:
            form.add_field(
                attachment.field_name,
                attachment.content,
                filename=attachment.filename,
                content_type=attachment.content_type,
            )
        return await self._request("POST", "/applications/concept/submit", data=form)

    async def upload_concept_file(
        self, record_id: str, attachment: AttachmentFile
    ) -> Dict[str, Any]:
        form = aiohttp.FormData()
        form.add_field("recordId", record_id)
        form.add_field("fieldName", attachment.field_name)
        form.add_field(
            "file",
            attachment.content,
            filename=attachment.filename,
            content_type=attachment.content_type,
        )
        return await self._request("POST", "/applications/concept/upload", data=form)

    # ------------------------------------------------------------------
    # Wizard integration
    # ------------------------------------------------------------------

    async def save_wizard_progress(
        self, wizard: StepWizard, application_id: str
    ) -> Dict[str, Any]:
        """Send the current step to the API and refresh the local draft."""
        wizard.save_draft()
        return await self.save_progress(application_id, wizard.progress_payload())

    async def submit_wizard(
        self,
        wizard: StepWizard,
        application_id: Optional[str] = None,
        attachments: Optional[Sequence[AttachmentFile]] = None,
    ) -> Dict[str, Any]:
        """Validate locally, submit, and clear the draft once accepted.

        Proposal wizards need ``application_id``; concept wizards submit
        their values (plus ``attachments``) to the concept pipeline.

        Raises:
            StepValidationError: local validation failed; nothing was sent.
            PortalAPIError: the API rejected the submission; the draft is kept.
        """
        errors = wizard.validate_all()
        if errors:
            raise StepValidationError(None, errors)

        if application_id is not None:
            result = await self.submit_application(application_id, wizard.values)
        else:
            result = await self.submit_concept(wizard.values, attachments)
        wizard.clear_draft()
        return result
