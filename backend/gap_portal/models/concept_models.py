"""Pydantic request/response schemas for concept paper submissions.

Payloads use the camelCase keys the web form sends; attributes are
snake_case.  Every field is optional at the schema level: the routers report
missing required fields (projectTitle, contactName, contactEmail) with a 400
and a single message, matching the form's expectations.
"""

import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from gap_portal.services.budget_service import to_amount

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Word limits shown on the concept form
PROJECT_TITLE_MAX_WORDS = 15
PROJECT_SUMMARY_MAX_WORDS = 250
PROJECT_GOALS_MAX_WORDS = 200
PROJECT_OUTPUTS_MAX_WORDS = 500

CONCEPT_REQUIRED_FIELDS = ("projectTitle", "contactName", "contactEmail")


def word_count(text: Optional[str]) -> int:
    if not text:
        return 0
    return len(text.split())


def check_word_limit(value: Optional[str], limit: int, message: str) -> Optional[str]:
    if value and word_count(value) > limit:
        raise ValueError(message)
    return value


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(EMAIL_PATTERN.match(value.strip()))


def coerce_amount(value: Any) -> float:
    """Blank/non-numeric -> 0.0; negative amounts are rejected."""
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value < 0:
        raise ValueError("Amount cannot be negative")
    if isinstance(value, str) and value.strip().startswith("-"):
        raise ValueError("Amount cannot be negative")
    return float(to_amount(value))


def blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CoFinancingEntry(CamelModel):
    organization: Optional[str] = ""
    contribution: float = 0.0
    percentage: Optional[float] = 0.0

    @field_validator("contribution", mode="before")
    @classmethod
    def _contribution(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator("percentage", mode="before")
    @classmethod
    def _percentage(cls, v: Any) -> Optional[float]:
        v = blank_to_none(v)
        if v is None:
            return None
        try:
            return float(v)
        except (TypeError, ValueError):
            return None


class ConceptSubmission(CamelModel):
    """Concept paper form data (sections A-D plus declaration)."""

    # A. Background information
    project_title: Optional[str] = None
    organization_name: Optional[str] = None
    organization_address: Optional[str] = None
    organization_type: Optional[str] = None
    other_organization_type: Optional[str] = None
    date_of_incorporation: Optional[str] = None

    # Main contact
    contact_name: Optional[str] = None
    contact_position: Optional[str] = None
    contact_email: Optional[str] = None
    contact_telephone: Optional[str] = None

    # Project duration
    proposed_start_date: Optional[str] = None
    duration_months: Optional[float] = Field(None, gt=0)

    # Award category and thematic area
    award_category: Optional[str] = None
    thematic_area: Optional[str] = None

    # Content sections
    project_summary: Optional[str] = None
    project_goal_objectives: Optional[str] = None
    project_outputs_activities: Optional[str] = None

    # Budget components
    salary_budget: float = 0.0
    travel_budget: float = 0.0
    equipment_budget: float = 0.0
    contracted_services_budget: float = 0.0
    operational_budget: float = 0.0
    education_budget: float = 0.0
    training_budget: float = 0.0
    administrative_budget: float = 0.0
    total_co_financing: float = 0.0
    co_financing_entries: List[CoFinancingEntry] = Field(default_factory=list)

    # Declaration
    legal_representative_name: Optional[str] = None
    declaration_date: Optional[str] = None

    @field_validator(
        "salary_budget",
        "travel_budget",
        "equipment_budget",
        "contracted_services_budget",
        "operational_budget",
        "education_budget",
        "training_budget",
        "administrative_budget",
        "total_co_financing",
        mode="before",
    )
    @classmethod
    def _amounts(cls, v: Any) -> float:
        return coerce_amount(v)

    @field_validator(
        "date_of_incorporation",
        "proposed_start_date",
        "declaration_date",
        "duration_months",
        mode="before",
    )
    @classmethod
    def _blank_is_missing(cls, v: Any) -> Any:
        return blank_to_none(v)

    @field_validator("project_title")
    @classmethod
    def _title_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(
            v, PROJECT_TITLE_MAX_WORDS, "Project title should be 15 words or less"
        )

    @field_validator("project_summary")
    @classmethod
    def _summary_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(
            v, PROJECT_SUMMARY_MAX_WORDS, "Summary should be 250 words or less"
        )

    @field_validator("project_goal_objectives")
    @classmethod
    def _goal_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(
            v, PROJECT_GOALS_MAX_WORDS, "Content should be 200 words or less"
        )

    @field_validator("project_outputs_activities")
    @classmethod
    def _outputs_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(
            v, PROJECT_OUTPUTS_MAX_WORDS, "Content should be 500 words or less"
        )

    @field_validator("contact_email")
    @classmethod
    def _email_format(cls, v: Optional[str]) -> Optional[str]:
        if v and not is_valid_email(v):
            raise ValueError("Invalid email")
        return v

    @model_validator(mode="after")
    def _sync_co_financing(self) -> "ConceptSubmission":
        # The form keeps totalCoFinancing in step with the entries table.
        if self.co_financing_entries:
            self.total_co_financing = sum(
                e.contribution for e in self.co_financing_entries
            )
        return self

    def missing_required_fields(self) -> List[str]:
        values = self.to_form_data()
        return [name for name in CONCEPT_REQUIRED_FIELDS if not values.get(name)]

    def to_form_data(self) -> dict:
        """Flat camelCase record, as the field mapper and budget expect."""
        return self.model_dump(by_alias=True)


class CRMRecordResult(CamelModel):
    success: bool = True
    record_id: Optional[str] = None
    message: str = ""


class EligibilityResponse(CamelModel):
    eligible: bool
    reason: Optional[str] = None


class UploadResultResponse(CamelModel):
    field_name: str
    filename: str
    success: bool
    message: str
    error: Optional[Any] = None


class ConceptSubmissionResponse(CamelModel):
    success: bool
    message: str
    data: CRMRecordResult
    eligibility: EligibilityResponse
    email_sent: bool = False
    uploads: List[UploadResultResponse] = Field(default_factory=list)
    upload_status: str = "none"
    budget: Optional[dict] = None


class FileUploadResponse(CamelModel):
    success: bool
    message: str
    data: Optional[Any] = None
