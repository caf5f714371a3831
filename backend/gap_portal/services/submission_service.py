"""Concept paper submission pipeline.

Creates the Zoho Creator record, screens eligibility, sends one notification
email and attaches the uploaded PDFs to the new record.  Only record creation
is fatal; email and upload failures are reported on the result.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from gap_portal.models.concept_models import ConceptSubmission
from gap_portal.services.budget_service import BudgetSummary, aggregate_budget
from gap_portal.services.eligibility import EligibilityResult, check_concept_eligibility
from gap_portal.services.email_service import EmailService
from gap_portal.services.field_mapper import map_concept_fields
from gap_portal.services.zoho_service import (
    ZohoAPIError,
    ZohoCreatorClient,
    ZohoRecord,
)

logger = logging.getLogger(__name__)

RECORD_CREATED_MESSAGE = "Concept paper record created successfully in Zoho Creator"


class SubmissionState(str, Enum):
    PENDING = "pending"
    RECORD_CREATED = "record_created"
    EMAIL_SENT = "email_sent"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    PARTIALLY_UPLOADED = "partially_uploaded"
    UPLOAD_FAILED = "upload_failed"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    SubmissionState.PENDING: {SubmissionState.RECORD_CREATED, SubmissionState.FAILED},
    SubmissionState.RECORD_CREATED: {
        SubmissionState.EMAIL_SENT,
        SubmissionState.UPLOADING,
        SubmissionState.DONE,
    },
    SubmissionState.EMAIL_SENT: {SubmissionState.UPLOADING, SubmissionState.DONE},
    SubmissionState.UPLOADING: {
        SubmissionState.UPLOADED,
        SubmissionState.PARTIALLY_UPLOADED,
        SubmissionState.UPLOAD_FAILED,
    },
    SubmissionState.UPLOADED: {SubmissionState.DONE},
    SubmissionState.PARTIALLY_UPLOADED: {SubmissionState.DONE},
    SubmissionState.UPLOAD_FAILED: {SubmissionState.DONE},
    SubmissionState.DONE: set(),
    SubmissionState.FAILED: set(),
}


class UploadStatus(str, Enum):
    ALL_SUCCESS = "all_success"
    SOME_FAILURE = "some_failure"
    ALL_FAILURE = "all_failure"
    NONE = "none"


class SubmissionTracker:
    """Forward-only state of one submission, logged on every move."""

    def __init__(self, label: str) -> None:
        self.label = label
        self.state = SubmissionState.PENDING
        self.history: List[SubmissionState] = [self.state]

    def advance(self, new_state: SubmissionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid submission transition {self.state.value} -> {new_state.value}"
            )
        logger.info(
            "Submission %r: %s -> %s", self.label, self.state.value, new_state.value
        )
        self.state = new_state
        self.history.append(new_state)


@dataclass
class AttachmentFile:
    """A PDF to attach to the Zoho record, keyed by Zoho field name."""

    field_name: str
    filename: str
    content: bytes
    content_type: str = "application/pdf"


@dataclass
class UploadResult:
    field_name: str
    filename: str
    success: bool
    message: str
    error: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fieldName": self.field_name,
            "filename": self.filename,
            "success": self.success,
            "message": self.message,
            "error": self.error,
        }


def summarize_uploads(results: Sequence[UploadResult]) -> UploadStatus:
    if not results:
        return UploadStatus.NONE
    succeeded = sum(1 for r in results if r.success)
    if succeeded == len(results):
        return UploadStatus.ALL_SUCCESS
    if succeeded == 0:
        return UploadStatus.ALL_FAILURE
    return UploadStatus.SOME_FAILURE


_UPLOAD_STATES = {
    UploadStatus.ALL_SUCCESS: SubmissionState.UPLOADED,
    UploadStatus.SOME_FAILURE: SubmissionState.PARTIALLY_UPLOADED,
    UploadStatus.ALL_FAILURE: SubmissionState.UPLOAD_FAILED,
}


@dataclass
class SubmissionResult:
    success: bool
    record_id: Optional[str]
    message: str
    eligibility: EligibilityResult
    email_sent: bool
    budget: BudgetSummary
    uploads: List[UploadResult] = field(default_factory=list)
    upload_status: UploadStatus = UploadStatus.NONE
    state: SubmissionState = SubmissionState.DONE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "message": self.message,
            "data": {
                "success": True,
                "recordId": self.record_id,
                "message": RECORD_CREATED_MESSAGE,
            },
            "eligibility": self.eligibility.to_dict(),
            "emailSent": self.email_sent,
            "uploads": [u.to_dict() for u in self.uploads],
            "uploadStatus": self.upload_status.value,
            "budget": self.budget.to_dict(),
        }


def build_result_message(
    email_sent: bool, uploads: Sequence[UploadResult], upload_status: UploadStatus
) -> str:
    problems = []
    if not email_sent:
        problems.append("the notification email could not be sent")
    if upload_status in (UploadStatus.SOME_FAILURE, UploadStatus.ALL_FAILURE):
        failed = sum(1 for u in uploads if not u.success)
        problems.append(f"{failed} of {len(uploads)} attachments failed to upload")
    if not problems:
        return RECORD_CREATED_MESSAGE
    return f"{RECORD_CREATED_MESSAGE}, but " + " and ".join(problems)


class ConceptSubmissionService:
    """Runs the concept paper pipeline against injected collaborators."""

    def __init__(
        self, zoho_client: ZohoCreatorClient, email_service: EmailService
    ) -> None:
        self.zoho_client = zoho_client
        self.email_service = email_service

    async def submit(
        self,
        concept: ConceptSubmission,
        attachments: Optional[Sequence[AttachmentFile]] = None,
        now: Optional[datetime] = None,
    ) -> SubmissionResult:
        """
        Submit one concept paper.

        Args:
            concept: Validated concept paper data
            attachments: PDFs to attach once the record exists
            now: Evaluation instant for the eligibility check

        Returns:
            SubmissionResult describing every step

        Raises:
            ZohoAPIError: when the record cannot be created; nothing else
                (email, uploads) is attempted in that case
        """
        tracker = SubmissionTracker(concept.project_title or "untitled")
        form_data = concept.to_form_data()
        budget = aggregate_budget(form_data)
        mapped = map_concept_fields(form_data, budget)

        try:
            record = await self.zoho_client.create_concept_record(
                form_data, mapped=mapped
            )
        except ZohoAPIError:
            tracker.advance(SubmissionState.FAILED)
            raise
        tracker.advance(SubmissionState.RECORD_CREATED)

        eligibility = check_concept_eligibility(concept, now=now)
        email_sent = await self._notify(concept, eligibility)
        if email_sent:
            tracker.advance(SubmissionState.EMAIL_SENT)

        uploads: List[UploadResult] = []
        upload_status = UploadStatus.NONE
        if attachments:
            tracker.advance(SubmissionState.UPLOADING)
            uploads = await self.upload_attachments(record, attachments)
            upload_status = summarize_uploads(uploads)
            tracker.advance(_UPLOAD_STATES[upload_status])
        tracker.advance(SubmissionState.DONE)

        return SubmissionResult(
            success=True,
            record_id=record.record_id,
            message=build_result_message(email_sent, uploads, upload_status),
            eligibility=eligibility,
            email_sent=email_sent,
            budget=budget,
            uploads=uploads,
            upload_status=upload_status,
            state=tracker.state,
        )

    async def _notify(
        self, concept: ConceptSubmission, eligibility: EligibilityResult
    ) -> bool:
        try:
            return await self.email_service.send_eligibility_notification(
                concept.contact_email, concept.contact_name, eligibility
            )
        except Exception as e:
            logger.error("Notification email failed for %s: %s", concept.contact_email, e)
            return False

    async def upload_attachments(
        self, record: ZohoRecord, attachments: Sequence[AttachmentFile]
    ) -> List[UploadResult]:
        """Upload all attachments concurrently; one result per file, in order."""
        tasks = [self._upload_one(record.record_id, a) for a in attachments]
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

        results = []
        for attachment, outcome in zip(attachments, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Unexpected error uploading %s: %s", attachment.filename, outcome
                )
                outcome = UploadResult(
                    attachment.field_name,
                    attachment.filename,
                    False,
                    f"Failed to upload {attachment.filename}",
                    str(outcome),
                )
            results.append(outcome)
        return results

    async def _upload_one(self, record_id: str, attachment: AttachmentFile) -> UploadResult:
        try:
            await self.zoho_client.upload_file(
                record_id,
                attachment.field_name,
                attachment.content,
                attachment.filename,
                content_type=attachment.content_type,
            )
        except ZohoAPIError as e:
            logger.warning(
                "Upload of %s to %s failed: %s", attachment.filename, attachment.field_name, e
            )
            return UploadResult(
                attachment.field_name,
                attachment.filename,
                False,
                f"Failed to upload {attachment.filename}",
                e.payload if e.payload is not None else e.message,
            )
        return UploadResult(
            attachment.field_name,
            attachment.filename,
            True,
            f"File uploaded successfully to {attachment.field_name}",
        )


async def submit_proposal(
    zoho_client: ZohoCreatorClient, proposal: Dict[str, Any]
) -> ZohoRecord:
    """Plain proposal flow: create the CRM record only."""
    record = await zoho_client.create_proposal_record(proposal)
    logger.info("Proposal record created: %s", record.record_id)
    return record
