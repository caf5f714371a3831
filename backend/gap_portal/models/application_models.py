"""Pydantic request/response schemas for grant proposal applications."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator

from gap_portal.models.concept_models import CamelModel
from gap_portal.models.step_schemas import PROPOSAL_TOTAL_STEPS


def _check_steps(steps: List[int]) -> List[int]:
    invalid = [s for s in steps if s < 1 or s > PROPOSAL_TOTAL_STEPS]
    if invalid:
        raise ValueError(
            f"Completed steps must be between 1 and {PROPOSAL_TOTAL_STEPS}: {invalid}"
        )
    return sorted(set(steps))


class ApplicationFields(CamelModel):
    """Editable application fields; any other form field is kept as extra."""

    model_config = ConfigDict(extra="allow")

    organization_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    project_title: Optional[str] = None


class ApplicationCreate(ApplicationFields):
    application_id: Optional[str] = None
    current_step: int = Field(1, ge=1, le=PROPOSAL_TOTAL_STEPS)
    completed_steps: List[int] = Field(default_factory=list)

    @field_validator("completed_steps")
    @classmethod
    def _steps_in_range(cls, v: List[int]) -> List[int]:
        return _check_steps(v)


class ApplicationUpdate(ApplicationFields):
    """Body of ``PUT /applications/{id}`` and ``PUT /applications/{id}/submit``.

    Status fields (``applicationStatus``, ``submittedAt``) are accepted but
    ignored; the status only changes through the submit endpoint.
    """

    current_step: Optional[int] = Field(None, ge=1, le=PROPOSAL_TOTAL_STEPS)
    completed_steps: Optional[List[int]] = None

    @field_validator("completed_steps")
    @classmethod
    def _steps_in_range(cls, v: Optional[List[int]]) -> Optional[List[int]]:
        return None if v is None else _check_steps(v)


class ProgressUpdate(CamelModel):
    """Partial save of the step the user is on."""

    current_step: int = Field(..., ge=1, le=PROPOSAL_TOTAL_STEPS)
    completed_steps: List[int] = Field(default_factory=list)
    step_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("completed_steps")
    @classmethod
    def _steps_in_range(cls, v: List[int]) -> List[int]:
        return _check_steps(v)


class ApplicationSummary(CamelModel):
    """Row of the application list."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    application_id: str
    organization_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    project_title: Optional[str] = None
    application_status: str = "draft"
    current_step: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None


class DeleteResponse(CamelModel):
    message: str = "Application deleted successfully"


class ZohoConnectionResponse(CamelModel):
    success: bool
    message: str
    has_access_token: bool = False
