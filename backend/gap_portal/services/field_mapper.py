"""Map portal form data onto Zoho Creator field names.

Two forms are forwarded to Zoho Creator: the full grant proposal and the
concept paper.  Both mappings take a flat record of camelCase form fields and
return a flat record keyed by Zoho field names.

Every value passes through :func:`classify_value` before it is forwarded.
Form values that are really foreign keys (Zoho/database identifiers carried
over from lookup fields) come back as :class:`ExternalIdentifier` and are
dropped; only :class:`TextValue` members reach Zoho.  Each field is mapped
independently, so one malformed value never blocks the others.
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from gap_portal.services.budget_service import (
    BudgetSummary,
    aggregate_budget,
    to_amount,
)

logger = logging.getLogger(__name__)

ZOHO_MONTHS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

# Largest integer a JSON/JavaScript client can represent exactly
MAX_SAFE_INTEGER = 2**53 - 1

_LONG_DIGIT_STRING = re.compile(r"^\d{15,}$")


# ---------------------------------------------------------------------------
# Value classification
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextValue:
    """A plain form answer that may be forwarded."""

    value: Any


@dataclass(frozen=True)
class ExternalIdentifier:
    """A lookup/record identifier that must not be forwarded as text."""

    value: Any


FieldValue = Union[TextValue, ExternalIdentifier]


def classify_value(value: Any) -> Optional[FieldValue]:
    """Tag a raw form value; None for missing or empty values.

    Integer-valued strings of 15 or more digits and numbers outside the
    safe-integer range are treated as external identifiers.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return TextValue(value)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return ExternalIdentifier(value)
        if abs(value) > MAX_SAFE_INTEGER:
            return ExternalIdentifier(value)
        return TextValue(value)
    if isinstance(value, str) and _LONG_DIGIT_STRING.match(value):
        return ExternalIdentifier(value)
    return TextValue(value)


def is_external_identifier(value: Any) -> bool:
    return isinstance(classify_value(value), ExternalIdentifier)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def parse_form_date(value: Any) -> Optional[date]:
    """Parse a form date (``YYYY-MM-DD``, ISO datetime, date/datetime).

    Returns None for missing or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def format_zoho_date(value: Any) -> Optional[str]:
    """Render a date as ``DD-Mon-YYYY`` (e.g. ``05-Mar-2024``); None if invalid."""
    try:
        parsed = parse_form_date(value)
    except Exception:
        logger.warning("Error formatting date: %r", value, exc_info=True)
        return None
    if parsed is None:
        return None
    return f"{parsed.day:02d}-{ZOHO_MONTHS[parsed.month - 1]}-{parsed.year:04d}"


def parse_form_datetime(value: Any) -> Optional[datetime]:
    """Like :func:`parse_form_date` but keeps the time of day.

    Bare dates are midnight; aware values are converted to naive UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            day = parse_form_date(value)
            if day is None:
                return None
            parsed = datetime(day.year, day.month, day.day)
    else:
        day = parse_form_date(value)
        if day is None:
            return None
        parsed = datetime(day.year, day.month, day.day)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def duration_in_days(start: Any, end: Any) -> Optional[int]:
    """Whole days from start to end, a partial day counting as one."""
    start_at = parse_form_datetime(start)
    end_at = parse_form_datetime(end)
    if start_at is None or end_at is None:
        return None
    return math.ceil((end_at - start_at) / timedelta(days=1))


def format_number(value: Any) -> str:
    """``5000`` for whole numbers, ``5000.5`` otherwise."""
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return str(number)


def join_non_empty(parts: Iterable[Any], separator: str = ", ") -> str:
    return separator.join(
        str(p) for p in parts if isinstance(classify_value(p), TextValue)
    )


# ---------------------------------------------------------------------------
# Record builder
# ---------------------------------------------------------------------------


class _ZohoRecord:
    """Accumulates mapped fields, guarding each one independently."""

    def __init__(self, form_name: str) -> None:
        self.form_name = form_name
        self.data: Dict[str, Any] = {}

    def put(self, zoho_field: str, value: Any) -> None:
        tagged = classify_value(value)
        if isinstance(tagged, TextValue):
            self.data[zoho_field] = tagged.value
        elif isinstance(tagged, ExternalIdentifier):
            logger.debug(
                "%s: skipping %s, value looks like an external identifier",
                self.form_name,
                zoho_field,
            )

    def put_computed(self, zoho_field: str, producer: Callable[[], Any]) -> None:
        try:
            value = producer()
        except Exception:
            logger.warning(
                "%s: could not map %s", self.form_name, zoho_field, exc_info=True
            )
            return
        if value is not None:
            self.put(zoho_field, value)

    def put_date(self, zoho_field: str, value: Any) -> None:
        if is_external_identifier(value):
            return
        self.put_computed(zoho_field, lambda: format_zoho_date(value))


# ---------------------------------------------------------------------------
# Proposal mapping
# ---------------------------------------------------------------------------


def map_proposal_fields(proposal: Mapping[str, Any]) -> Dict[str, Any]:
    """Map full proposal form data to the Zoho proposal form."""
    record = _ZohoRecord("proposal")

    record.put("Project_Title", proposal.get("projectTitle"))
    record.put("Project_title1", proposal.get("projectTitle"))
    record.put_date("Proposed_Start_Date", proposal.get("proposedStartDate"))
    record.put("Recipient_Organization", proposal.get("organizationName"))
    record.put("Stakeholder_Engagement_Plan_SEP", proposal.get("sep"))
    record.put("SUMMARY", proposal.get("projectDescription"))
    record.put(
        "SUSTAINABILITY_REPLICATION1", proposal.get("sustainabilityReplication")
    )

    def _duration() -> Optional[str]:
        start = proposal.get("proposedStartDate")
        end = proposal.get("expectedEndDate")
        if is_external_identifier(start) or is_external_identifier(end):
            return None
        days = duration_in_days(start, end)
        return None if days is None else f"{days} days"

    record.put_computed("Project_Duration1", _duration)
    record.put("Project_Goal", proposal.get("projectGoal"))
    record.put("Project_Goal1", proposal.get("projectGoal"))
    record.put_computed(
        "Project_Location",
        lambda: join_non_empty(
            (
                proposal.get("proposalVillageOrCity"),
                proposal.get("district"),
                proposal.get("proposalProjectLocation"),
            )
        ),
    )

    logger.info("Mapped proposal data: %d Zoho fields", len(record.data))
    return record.data


# ---------------------------------------------------------------------------
# Concept paper mapping
# ---------------------------------------------------------------------------


def summarize_co_financing(entries: Optional[Iterable[Any]]) -> str:
    """``"Org A: $5000 (20%); Org B: $2500 (10%)"`` for usable entries."""
    parts = []
    for entry in entries or []:
        if not isinstance(entry, Mapping):
            entry = entry.model_dump() if hasattr(entry, "model_dump") else vars(entry)
        organization = entry.get("organization")
        contribution = to_amount(entry.get("contribution"))
        if not organization or contribution <= 0:
            continue
        percentage = entry.get("percentage") or 0
        parts.append(
            f"{organization}: ${format_number(contribution)} "
            f"({format_number(percentage)}%)"
        )
    return "; ".join(parts)


def _number_field(value: Any) -> Any:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def map_concept_fields(
    concept: Mapping[str, Any], budget: Optional[BudgetSummary] = None
) -> Dict[str, Any]:
    """Map concept paper form data to the Zoho concept form.

    Args:
        concept: Flat camelCase concept data.
        budget: Precomputed budget summary; aggregated from ``concept`` when
            omitted.

    Returns:
        Dict keyed by Zoho field names.
    """
    record = _ZohoRecord("concept")

    # Background information
    record.put("Project_Title", concept.get("projectTitle"))
    record.put("Organization_Name", concept.get("organizationName"))
    record.put("Organization_Address", concept.get("organizationAddress"))
    record.put("Type_of_Organization", concept.get("organizationType"))
    record.put_date(
        "Date_of_Incorporation_of_Organization", concept.get("dateOfIncorporation")
    )

    # Main contact
    record.put("Contact_Name", concept.get("contactName"))
    record.put("Position", concept.get("contactPosition"))
    record.put("Email", concept.get("contactEmail"))
    record.put("Telephone", concept.get("contactTelephone"))

    # Project duration
    record.put_date("Proposed_Start_Date", concept.get("proposedStartDate"))
    record.put_computed(
        "Duration_Months", lambda: _number_field(concept.get("durationMonths"))
    )

    # Award category and thematic area
    record.put("Award_Category1", concept.get("awardCategory"))
    record.put("Project_Theme", concept.get("thematicArea"))

    # Content sections
    record.put("Project_Summary", concept.get("projectSummary"))
    record.put("Project_Goal_and_Objectives", concept.get("projectGoalObjectives"))
    record.put(
        "Project_Outputs_and_Activities", concept.get("projectOutputsActivities")
    )

    # Budget
    try:
        summary = budget or aggregate_budget(concept)
    except Exception:
        logger.warning("concept: budget aggregation failed", exc_info=True)
        summary = None

    if summary is not None:
        if summary.total_co_financing > 0:
            record.put("Total_Co_Financing", f"{summary.total_co_financing:.2f}")
        if summary.total_project_cost > 0:
            record.put(
                "Total_Project_Estimated_Cost", f"{summary.total_project_cost:.2f}"
            )
            record.put("Total_Project_Estimated_Cost_Percentage", "100.00")
            record.put(
                "Total_Co_Financing_Percentage",
                f"{summary.co_financing_percentage:.2f}",
            )
        if summary.total_requested > 0:
            record.put("Total2", f"{summary.total_requested:.2f}")
        if summary.breakdown:
            record.data["Project_Budget_Summary"] = [
                line.to_zoho() for line in summary.breakdown
            ]

    record.put_computed(
        "Co_Financing_Details",
        lambda: summarize_co_financing(concept.get("coFinancingEntries")),
    )

    # Declaration
    record.put("Legal_Representative_Name", concept.get("legalRepresentativeName"))
    record.put_date("Declaration_Date", concept.get("declarationDate"))

    logger.info(
        "Mapped concept data: %d Zoho fields, %d budget lines",
        len(record.data),
        len(record.data.get("Project_Budget_Summary", [])),
    )
    return record.data
