"""Budget aggregation for concept paper submissions.

Sums the eight itemised budget categories of a concept paper, builds the
per-category breakdown sent to the Zoho ``Project_Budget_Summary`` subform,
and splits the total project cost between the amount requested from the
fund and co-financing.
"""

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Mapping, Optional

logger = logging.getLogger(__name__)

# Two-decimal quantizer for money and percentage rounding
_TWO_PLACES = Decimal("0.01")
_ZERO = Decimal("0.00")
_HUNDRED = Decimal("100.00")

# (form field, display label) in standard display order
BUDGET_CATEGORIES: tuple[tuple[str, str], ...] = (
    ("salaryBudget", "Salary"),
    ("travelBudget", "Travel/accommodation"),
    ("equipmentBudget", "Equipment/supplies"),
    ("contractedServicesBudget", "Contracted Services"),
    ("operationalBudget", "Operational Costs"),
    ("educationBudget", "Education/outreach"),
    ("trainingBudget", "Training"),
    ("administrativeBudget", "Administrative"),
)


def to_amount(value: Any) -> Decimal:
    """Coerce a form value to a non-negative Decimal.

    Missing, blank, non-numeric and non-finite values count as zero, and so
    do negative amounts.
    """
    if value is None or isinstance(value, bool):
        return _ZERO
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return _ZERO
    if not amount.is_finite() or amount < 0:
        return _ZERO
    return amount


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)


def percentage_of(part: Decimal, whole: Decimal) -> Decimal:
    """``part`` as a two-decimal percentage of ``whole`` (0.00 when whole is 0)."""
    if whole <= 0:
        return _ZERO
    return _quantize(part / whole * 100)


def _apportion_percentages(amounts: List[Decimal], total: Decimal) -> List[Decimal]:
    """Split 100.00 across ``amounts`` by the largest-remainder method.

    Works in hundredths of a percent so the returned shares always add up
    to exactly 100.00.
    """
    if total <= 0:
        return [_ZERO for _ in amounts]

    exact = [amount * 10000 / total for amount in amounts]
    floors = [int(share) for share in exact]
    shortfall = 10000 - sum(floors)
    by_remainder = sorted(
        range(len(amounts)),
        key=lambda i: (exact[i] - floors[i], amounts[i]),
        reverse=True,
    )
    for i in by_remainder[:shortfall]:
        floors[i] += 1
    return [_quantize(Decimal(units) / 100) for units in floors]


@dataclass(frozen=True)
class BudgetLine:
    category: str
    amount: Decimal
    percentage: Decimal

    def to_zoho(self) -> Dict[str, str]:
        """Row of the ``Project_Budget_Summary`` subform."""
        return {
            "Categories": self.category,
            "Total_Contribution_BZD": f"{self.amount:.2f}",
            "Percentage": f"{self.percentage:.2f}",
        }


@dataclass(frozen=True)
class BudgetSummary:
    total_requested: Decimal
    total_co_financing: Decimal
    total_project_cost: Decimal
    requested_percentage: Decimal
    co_financing_percentage: Decimal
    breakdown: List[BudgetLine] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalRequested": float(self.total_requested),
            "totalCoFinancing": float(self.total_co_financing),
            "totalProjectCost": float(self.total_project_cost),
            "requestedPercentage": float(self.requested_percentage),
            "coFinancingPercentage": float(self.co_financing_percentage),
            "breakdown": [
                {
                    "category": line.category,
                    "amount": float(line.amount),
                    "percentage": float(line.percentage),
                }
                for line in self.breakdown
            ],
        }


def _entry_contribution(entry: Any) -> Decimal:
    if isinstance(entry, Mapping):
        return to_amount(entry.get("contribution"))
    return to_amount(getattr(entry, "contribution", None))


def total_co_financing(
    entries: Optional[Iterable[Any]], fallback: Any = None
) -> Decimal:
    """Sum of co-financing contributions.

    ``fallback`` (the form's ``totalCoFinancing`` field) is used only when
    no entries were supplied.
    """
    entry_list = list(entries or [])
    if not entry_list:
        return to_amount(fallback)
    return sum((_entry_contribution(e) for e in entry_list), _ZERO)


def build_breakdown(data: Mapping[str, Any]) -> List[BudgetLine]:
    """Non-zero categories with their share of the total requested."""
    amounts = [(label, to_amount(data.get(key))) for key, label in BUDGET_CATEGORIES]
    nonzero = [(label, amount) for label, amount in amounts if amount > 0]
    total = sum((amount for _, amount in nonzero), _ZERO)
    shares = _apportion_percentages([amount for _, amount in nonzero], total)
    return [
        BudgetLine(category=label, amount=_quantize(amount), percentage=share)
        for (label, amount), share in zip(nonzero, shares)
    ]


def aggregate_budget(data: Mapping[str, Any]) -> BudgetSummary:
    """Compute totals, shares and the category breakdown for a concept paper.

    Args:
        data: Flat concept form data (camelCase keys) holding the eight
            ``*Budget`` fields plus ``coFinancingEntries`` and/or
            ``totalCoFinancing``.

    Returns:
        BudgetSummary.  ``requested_percentage + co_financing_percentage``
        is exactly 100.00 whenever the total project cost is positive.
    """
    total_requested = sum(
        (to_amount(data.get(key)) for key, _ in BUDGET_CATEGORIES), _ZERO
    )
    co_financing = total_co_financing(
        data.get("coFinancingEntries"), data.get("totalCoFinancing")
    )
    project_cost = total_requested + co_financing

    co_pct = percentage_of(co_financing, project_cost)
    requested_pct = _HUNDRED - co_pct if project_cost > 0 else _ZERO

    summary = BudgetSummary(
        total_requested=_quantize(total_requested),
        total_co_financing=_quantize(co_financing),
        total_project_cost=_quantize(project_cost),
        requested_percentage=requested_pct,
        co_financing_percentage=co_pct,
        breakdown=build_breakdown(data),
    )
    logger.debug(
        "Budget aggregated: requested=%s co_financing=%s categories=%d",
        summary.total_requested,
        summary.total_co_financing,
        len(summary.breakdown),
    )
    return summary
