"""Applications router: proposal drafts, progress saves and submission.

Also exposes the proposal-to-Zoho endpoint and the Zoho connection check.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from gap_portal.deps import _safe_error, get_db, get_zoho_client
from gap_portal.models.application_models import (
    ApplicationCreate,
    ApplicationSummary,
    ApplicationUpdate,
    DeleteResponse,
    ProgressUpdate,
    ZohoConnectionResponse,
)
from gap_portal.models.step_schemas import validate_step
from gap_portal.services.application_service import (
    ApplicationAlreadySubmittedError,
    ApplicationNotFoundError,
    ApplicationService,
    ApplicationValidationError,
)
from gap_portal.services.submission_service import submit_proposal
from gap_portal.services.zoho_service import ZohoAPIError, ZohoCreatorClient

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["applications"])

PROPOSAL_REQUIRED_FIELDS = ("projectTitle", "contactName", "email")


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND, detail="Application not found"
    )


def _crm_error(message: str, exc: ZohoAPIError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "message": message,
            "error": exc.payload if exc.payload is not None else exc.message,
        },
    )


# ---------------------------------------------------------------------------
# GET  /applications
# ---------------------------------------------------------------------------


@router.get("/applications", response_model=List[ApplicationSummary])
async def list_applications(db: AsyncSession = Depends(get_db)):
    """List application summaries, newest first."""
    try:
        applications = await ApplicationService.list_applications(db)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("Fetching applications", e),
        ) from e
    return [ApplicationSummary.model_validate(a) for a in applications]


# ---------------------------------------------------------------------------
# GET  /applications/status/{status}
# ---------------------------------------------------------------------------


@router.get("/applications/status/{application_status}")
async def list_applications_by_status(
    application_status: str, db: AsyncSession = Depends(get_db)
) -> List[Dict[str, Any]]:
    """Full records with the given status, newest first."""
    try:
        applications = await ApplicationService.list_applications(
            db, status=application_status
        )
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=_safe_error("Fetching applications by status", e),
        ) from e
    return [ApplicationService.to_response(a) for a in applications]


# ---------------------------------------------------------------------------
# GET  /applications/zoho/test
# ---------------------------------------------------------------------------


@router.get("/applications/zoho/test", response_model=ZohoConnectionResponse)
async def test_zoho_connection(
    zoho_client: ZohoCreatorClient = Depends(get_zoho_client),
):
    """Check that a Zoho access token can be obtained."""
    try:
        connected = await zoho_client.test_connection()
    except ZohoAPIError as e:
        logger.error("Zoho connection test failed: %s", e)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "message": "Zoho connection failed",
                "error": e.message,
            },
        )
    return ZohoConnectionResponse(
        success=True,
        message="Zoho connection successful",
        has_access_token=connected,
    )


# ---------------------------------------------------------------------------
# POST /applications/zoho/create
# ---------------------------------------------------------------------------


@router.post("/applications/zoho/create", status_code=status.HTTP_201_CREATED)
async def create_proposal_record(
    proposal: Dict[str, Any] = Body(...),
    zoho_client: ZohoCreatorClient = Depends(get_zoho_client),
):
    """Create a proposal record in Zoho Creator (no email, no uploads)."""
    if any(not proposal.get(name) for name in PROPOSAL_REQUIRED_FIELDS):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: " + ", ".join(PROPOSAL_REQUIRED_FIELDS),
        )
    try:
        record = await submit_proposal(zoho_client, proposal)
    except ZohoAPIError as e:
        return _crm_error("Error creating record in Zoho Creator", e)
    return {
        "success": True,
        "message": "Record created successfully in Zoho Creator",
        "data": {"success": True, "recordId": record.record_id, "message": record.message},
    }


# ---------------------------------------------------------------------------
# GET  /applications/{id}
# ---------------------------------------------------------------------------


@router.get("/applications/{application_id}")
async def get_application(
    application_id: uuid.UUID, db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    try:
        application = await ApplicationService.get(db, application_id)
    except ApplicationNotFoundError:
        raise _not_found()
    return ApplicationService.to_response(application)


# ---------------------------------------------------------------------------
# POST /applications
# ---------------------------------------------------------------------------


@router.post("/applications", status_code=status.HTTP_201_CREATED)
async def create_application(
    body: ApplicationCreate, db: AsyncSession = Depends(get_db)
) -> Dict[str, Any]:
    """Create a draft application from the first save of the form."""
    try:
        application = await ApplicationService.create(
            db, body.model_dump(by_alias=True, exclude_unset=True)
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return ApplicationService.to_response(application)


# ---------------------------------------------------------------------------
# PUT  /applications/{id}
# ---------------------------------------------------------------------------


@router.put("/applications/{application_id}")
async def update_application(
    application_id: uuid.UUID,
    body: ApplicationUpdate,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Update form fields.  Status fields in the body are ignored."""
    try:
        application = await ApplicationService.update(
            db, application_id, body.model_dump(by_alias=True, exclude_unset=True)
        )
    except ApplicationNotFoundError:
        raise _not_found()
    return ApplicationService.to_response(application)


# ---------------------------------------------------------------------------
# PUT  /applications/{id}/progress
# ---------------------------------------------------------------------------


@router.put("/applications/{application_id}/progress")
async def save_progress(
    application_id: uuid.UUID,
    body: ProgressUpdate,
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Save the current step's fields along with the wizard position."""
    errors = validate_step(body.current_step, body.step_data)
    if errors:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={"message": "Error saving progress", "errors": errors},
        )
    try:
        application = await ApplicationService.save_progress(
            db,
            application_id,
            body.current_step,
            body.completed_steps,
            body.step_data,
        )
    except ApplicationNotFoundError:
        raise _not_found()
    return ApplicationService.to_response(application)


# ---------------------------------------------------------------------------
# PUT  /applications/{id}/submit
# ---------------------------------------------------------------------------


@router.put("/applications/{application_id}/submit")
async def submit_application(
    application_id: uuid.UUID,
    body: Optional[ApplicationUpdate] = None,
    db: AsyncSession = Depends(get_db),
    zoho_client: ZohoCreatorClient = Depends(get_zoho_client),
) -> Dict[str, Any]:
    """Validate the full record, mark it submitted and forward it to Zoho.

    The Zoho record is best effort: a CRM failure is reported in
    ``zohoError`` and never undoes the submission.
    """
    values = body.model_dump(by_alias=True, exclude_unset=True) if body else {}
    try:
        application = await ApplicationService.submit(db, application_id, values)
    except ApplicationNotFoundError:
        raise _not_found()
    except ApplicationAlreadySubmittedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except ApplicationValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": "Error submitting application", "errors": e.errors},
        )

    response = ApplicationService.to_response(application)
    try:
        record = await submit_proposal(zoho_client, response)
    except ZohoAPIError as e:
        logger.error(
            "Zoho record for %s not created: %s", application.application_id, e
        )
        response.update(
            zohoRecordId=None,
            zohoSuccess=False,
            zohoError="Failed to create Zoho Creator record",
        )
    else:
        response.update(zohoRecordId=record.record_id, zohoSuccess=True, zohoError=None)
    return response


# ---------------------------------------------------------------------------
# DELETE /applications/{id}
# ---------------------------------------------------------------------------


@router.delete("/applications/{application_id}", response_model=DeleteResponse)
async def delete_application(
    application_id: uuid.UUID, db: AsyncSession = Depends(get_db)
):
    try:
        await ApplicationService.delete(db, application_id)
    except ApplicationNotFoundError:
        raise _not_found()
    return DeleteResponse()
