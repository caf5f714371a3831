"""Concept paper router: submission pipeline and PDF uploads."""

import json
import logging
from typing import List, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.datastructures import UploadFile as StarletteUploadFile

from gap_portal.deps import get_concept_service, get_zoho_client, limiter
from gap_portal.models.concept_models import (
    CONCEPT_REQUIRED_FIELDS,
    ConceptSubmission,
    ConceptSubmissionResponse,
    FileUploadResponse,
)
from gap_portal.security import SUBMISSION_RATE_LIMIT, UPLOAD_RATE_LIMIT
from gap_portal.services.attachment_service import read_pdf_upload
from gap_portal.services.submission_service import (
    AttachmentFile,
    ConceptSubmissionService,
)
from gap_portal.services.zoho_service import ZohoAPIError, ZohoCreatorClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/applications/concept", tags=["concept"])

CONCEPT_ERROR_MESSAGE = "Error creating concept paper record in Zoho Creator"


def _require_concept_fields(concept: ConceptSubmission) -> None:
    if concept.missing_required_fields():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: " + ", ".join(CONCEPT_REQUIRED_FIELDS),
        )


async def _run_pipeline(
    service: ConceptSubmissionService,
    concept: ConceptSubmission,
    attachments: Optional[List[AttachmentFile]] = None,
):
    try:
        result = await service.submit(concept, attachments)
    except ZohoAPIError as e:
        logger.error("Concept paper %r not created: %s", concept.project_title, e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "message": CONCEPT_ERROR_MESSAGE,
                "error": e.payload if e.payload is not None else e.message,
            },
        )
    return JSONResponse(status_code=status.HTTP_201_CREATED, content=result.to_dict())


# ---------------------------------------------------------------------------
# POST /applications/concept/zoho/create
# ---------------------------------------------------------------------------


@router.post(
    "/zoho/create",
    response_model=ConceptSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(SUBMISSION_RATE_LIMIT)
async def create_concept_record(
    request: Request,
    concept: ConceptSubmission,
    service: ConceptSubmissionService = Depends(get_concept_service),
):
    """Run the concept pipeline for a JSON submission without attachments."""
    _require_concept_fields(concept)
    return await _run_pipeline(service, concept)


# ---------------------------------------------------------------------------
# POST /applications/concept/submit
# ---------------------------------------------------------------------------


@router.post(
    "/submit",
    response_model=ConceptSubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(SUBMISSION_RATE_LIMIT)
async def submit_concept(
    request: Request,
    service: ConceptSubmissionService = Depends(get_concept_service),
):
    """Run the concept pipeline for a multipart submission.

    The form carries a ``data`` part with the concept JSON; every file part
    is a PDF named after the Zoho field it belongs to.
    """
    form = await request.form()
    raw = form.get("data")
    if not isinstance(raw, str) or not raw.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing 'data' field with the concept paper JSON",
        )
    try:
        concept = ConceptSubmission.model_validate(json.loads(raw))
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="'data' field is not valid JSON",
        )
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )
    _require_concept_fields(concept)

    attachments = []
    for field_name, value in form.multi_items():
        if isinstance(value, StarletteUploadFile):
            attachments.append(await read_pdf_upload(value, field_name))
    logger.info(
        "Concept submission %r with %d attachments",
        concept.project_title,
        len(attachments),
    )
    return await _run_pipeline(service, concept, attachments)


# ---------------------------------------------------------------------------
# POST /applications/concept/upload
# ---------------------------------------------------------------------------


@router.post("/upload", response_model=FileUploadResponse)
@limiter.limit(UPLOAD_RATE_LIMIT)
async def upload_concept_file(
    request: Request,
    record_id: Optional[str] = Form(None, alias="recordId"),
    field_name: Optional[str] = Form(None, alias="fieldName"),
    file: Optional[UploadFile] = File(None),
    zoho_client: ZohoCreatorClient = Depends(get_zoho_client),
):
    """Attach one PDF to an existing concept record."""
    if not record_id or not field_name or file is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=(
                "Missing required fields: recordId, fieldName, and file are required."
            ),
        )

    attachment = await read_pdf_upload(file, field_name)
    logger.info("File upload request for record %s, field %s", record_id, field_name)
    try:
        data = await zoho_client.upload_file(
            record_id,
            field_name,
            attachment.content,
            attachment.filename,
            content_type=attachment.content_type,
        )
    except ZohoAPIError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "message": f"Failed to upload file: {e.message}",
                "error": e.payload if e.payload is not None else e.message,
            },
        )
    return FileUploadResponse(
        success=True,
        message=f"File uploaded successfully to {field_name}",
        data=data,
    )
