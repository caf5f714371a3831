"""Preliminary eligibility screening for concept paper submissions."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Optional

from gap_portal.services.field_mapper import parse_form_date

logger = logging.getLogger(__name__)

DISALLOWED_ORGANIZATION_TYPES = ("Statutory Body", "Government")
OTHER_ORGANIZATION_TYPE = "Other"

REASON_ORGANIZATION_TYPE = "Organization type is not eligible."
REASON_INCORPORATION_DATE_REQUIRED = (
    "Date of incorporation is required for eligibility check."
)
REASON_TOO_YOUNG = "Organization must have existed for at least one year."


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        if self.eligible:
            return {"eligible": True}
        return {"eligible": False, "reason": self.reason}


def one_year_before(day: date) -> date:
    try:
        return day.replace(year=day.year - 1)
    except ValueError:
        # 29 February
        return day.replace(year=day.year - 1, day=28)


def effective_organization_type(
    organization_type: Optional[str], other_organization_type: Optional[str]
) -> str:
    if organization_type == OTHER_ORGANIZATION_TYPE and other_organization_type:
        return other_organization_type
    return organization_type or ""


def check_eligibility(
    organization_type: Optional[str],
    other_organization_type: Optional[str],
    date_of_incorporation: Any,
    now: Optional[datetime] = None,
) -> EligibilityResult:
    """Evaluate the eligibility rules in order; the first failure wins.

    Args:
        organization_type: Selected organisation type.
        other_organization_type: Free text used when the type is "Other".
        date_of_incorporation: Incorporation date (string or date).
        now: Evaluation instant, defaults to the current UTC time.

    Returns:
        EligibilityResult with the reason of the first failing rule.
    """
    org_type = effective_organization_type(
        organization_type, other_organization_type
    ).lower()
    if any(t.lower() in org_type for t in DISALLOWED_ORGANIZATION_TYPES):
        return EligibilityResult(False, REASON_ORGANIZATION_TYPE)

    incorporated = parse_form_date(date_of_incorporation)
    if incorporated is None:
        return EligibilityResult(False, REASON_INCORPORATION_DATE_REQUIRED)

    today = (now or datetime.now(timezone.utc)).date()
    if incorporated > one_year_before(today):
        return EligibilityResult(False, REASON_TOO_YOUNG)

    return EligibilityResult(True)


def check_concept_eligibility(
    concept: Any, now: Optional[datetime] = None
) -> EligibilityResult:
    """Run :func:`check_eligibility` over a concept paper payload."""
    result = check_eligibility(
        getattr(concept, "organization_type", None),
        getattr(concept, "other_organization_type", None),
        getattr(concept, "date_of_incorporation", None),
        now=now,
    )
    logger.info(
        "Eligibility check: eligible=%s reason=%s", result.eligible, result.reason
    )
    return result
