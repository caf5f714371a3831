"""Per-step validation for the nine-step proposal wizard.

No field is required while a step is being filled in; each schema only
checks the values that are present (word limits, email format, date order,
positive amounts).  Unknown keys are allowed so a step can carry extra
form fields.
"""

from datetime import date
from typing import Any, Dict, Optional, Type

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from gap_portal.models.concept_models import (
    blank_to_none,
    check_word_limit,
    is_valid_email,
)

PROPOSAL_TOTAL_STEPS = 9


class StepModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )


class FrontPageStep(StepModel):
    """Step 1: lead organisation, main contact, duration, location, budget."""

    project_title: Optional[str] = None
    organization_name: Optional[str] = None
    organization_address: Optional[str] = None
    organization_type: Optional[str] = None
    date_of_incorporation: Optional[date] = None
    contact_name: Optional[str] = None
    contact_position: Optional[str] = None
    contact_email: Optional[str] = None
    contact_telephone: Optional[str] = None
    proposed_start_date: Optional[date] = None
    expected_end_date: Optional[date] = None
    primary_location: Optional[str] = None
    project_environment: Optional[str] = None
    detailed_location_description: Optional[str] = None
    total_project_cost: Optional[float] = Field(None, gt=0)
    amount_requested: Optional[float] = Field(None, gt=0)
    total_co_financing: Optional[float] = Field(None, ge=0)

    @field_validator(
        "date_of_incorporation",
        "proposed_start_date",
        "expected_end_date",
        "total_project_cost",
        "amount_requested",
        "total_co_financing",
        mode="before",
    )
    @classmethod
    def _blank_is_missing(cls, v: Any) -> Any:
        return blank_to_none(v)

    @field_validator("project_title")
    @classmethod
    def _title_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(v, 15, "Project title should be 15 words or less")

    @field_validator("contact_email")
    @classmethod
    def _email(cls, v: Optional[str]) -> Optional[str]:
        if v and not is_valid_email(v):
            raise ValueError("Invalid email")
        return v

    @model_validator(mode="after")
    def _end_after_start(self) -> "FrontPageStep":
        if (
            self.proposed_start_date
            and self.expected_end_date
            and self.expected_end_date < self.proposed_start_date
        ):
            raise ValueError("End date must be after start date")
        return self


class BackgroundStep(StepModel):
    """Step 2: project summary and organisational background."""

    project_summary: Optional[str] = None
    primary_thematic_area: Optional[str] = None
    organization_mission: Optional[str] = None
    organization_vision: Optional[str] = None
    legal_status: Optional[str] = None
    registration_date: Optional[date] = None
    organizational_background: Optional[str] = None
    project_manager_name: Optional[str] = None
    project_manager_qualifications: Optional[str] = None
    previous_relevant_projects: Optional[str] = None

    @field_validator("registration_date", mode="before")
    @classmethod
    def _blank_is_missing(cls, v: Any) -> Any:
        return blank_to_none(v)

    @field_validator("project_summary")
    @classmethod
    def _summary_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(v, 500, "Summary should be 500 words or less")

    @field_validator("organizational_background")
    @classmethod
    def _background_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(v, 500, "Background should be 500 words or less")


class GoalsStep(StepModel):
    project_goal_objectives: Optional[str] = None
    logical_framework_goal: Optional[str] = None
    objective1: Optional[str] = None

    @field_validator("project_goal_objectives")
    @classmethod
    def _goal_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(v, 500, "Content should be 500 words or less")


class ImplementationStep(StepModel):
    selected_belize_fund_indicators: Optional[str] = None
    alignment_justification: Optional[str] = None
    implementation_duration: Optional[float] = Field(None, gt=0)
    responsible_party: Optional[str] = None
    implementation_timeline: Optional[str] = None
    key_milestones: Optional[str] = None
    monitoring_integration: Optional[str] = None

    @field_validator("implementation_duration", mode="before")
    @classmethod
    def _blank_is_missing(cls, v: Any) -> Any:
        return blank_to_none(v)


class RiskScreeningStep(StepModel):
    esrst_status: Optional[str] = None
    esrmp_status: Optional[str] = None
    gap_status: Optional[str] = None
    sep_status: Optional[str] = None


class MonitoringStep(StepModel):
    monitoring_evaluation_plan: Optional[str] = None
    recipient_organization: Optional[str] = None
    me_project_goal: Optional[str] = None
    me_project_objectives: Optional[str] = None
    end_project_evaluation_plan: Optional[str] = None

    @field_validator("monitoring_evaluation_plan")
    @classmethod
    def _plan_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(v, 500, "M&E plan should be 500 words or less")


class SustainabilityStep(StepModel):
    sustainability_plan: Optional[str] = None

    @field_validator("sustainability_plan")
    @classmethod
    def _plan_words(cls, v: Optional[str]) -> Optional[str]:
        return check_word_limit(
            v, 300, "Sustainability plan should be 300 words or less"
        )


class BudgetStep(StepModel):
    total_budget_requested: Optional[float] = Field(None, gt=0)
    budget_notes: Optional[str] = None

    @field_validator("total_budget_requested", mode="before")
    @classmethod
    def _blank_is_missing(cls, v: Any) -> Any:
        return blank_to_none(v)


class DeclarationStep(StepModel):
    """Step 9: attachments and declaration."""

    legal_representative_name: Optional[str] = None
    legal_representative_title: Optional[str] = None
    declaration_date: Optional[date] = None
    declaration_checkbox: Optional[bool] = None

    @field_validator("declaration_date", mode="before")
    @classmethod
    def _blank_is_missing(cls, v: Any) -> Any:
        return blank_to_none(v)


STEP_SCHEMAS: Dict[int, Type[StepModel]] = {
    1: FrontPageStep,
    2: BackgroundStep,
    3: GoalsStep,
    4: ImplementationStep,
    5: RiskScreeningStep,
    6: MonitoringStep,
    7: SustainabilityStep,
    8: BudgetStep,
    9: DeclarationStep,
}


def get_step_schema(step: int) -> Type[StepModel]:
    return STEP_SCHEMAS.get(step, StepModel)


def validate_values(schema: Type[StepModel], values: Dict[str, Any]) -> Dict[str, str]:
    """Validate ``values`` against ``schema``; returns ``{field: message}``."""
    try:
        schema.model_validate(values)
    except ValidationError as exc:
        errors: Dict[str, str] = {}
        for error in exc.errors():
            loc = error.get("loc") or ()
            key = str(loc[0]) if loc else "__root__"
            message = error.get("msg", "Invalid value")
            # pydantic prefixes custom ValueError messages
            if message.startswith("Value error, "):
                message = message[len("Value error, "):]
            errors.setdefault(key, message)
        return errors
    return {}


def validate_step(step: int, values: Dict[str, Any]) -> Dict[str, str]:
    """Validate one step's values (empty dict if valid)."""
    return validate_values(get_step_schema(step), values)
