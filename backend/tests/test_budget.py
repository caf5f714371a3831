"""
Unit Tests for the Budget Aggregator

Usage:
    pytest backend/tests/test_budget.py -v
"""

import os
import sys
from decimal import Decimal

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from gap_portal.services.budget_service import (  # noqa: E402
    BUDGET_CATEGORIES,
    BudgetLine,
    aggregate_budget,
    build_breakdown,
    percentage_of,
    to_amount,
    total_co_financing,
)


# ============================================================================
# AMOUNT COERCION
# ============================================================================


class TestToAmount:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (None, Decimal("0")),
            ("", Decimal("0")),
            ("abc", Decimal("0")),
            (True, Decimal("0")),
            (-25, Decimal("0")),
            ("-1.5", Decimal("0")),
            (float("inf"), Decimal("0")),
            ("1500.50", Decimal("1500.50")),
            (200, Decimal("200")),
        ],
    )
    def test_coerces_to_non_negative_decimal(self, value, expected):
        assert to_amount(value) == expected

    def test_percentage_of_zero_whole_is_zero(self):
        assert percentage_of(Decimal("10"), Decimal("0")) == Decimal("0.00")


# ============================================================================
# BREAKDOWN
# ============================================================================


class TestBreakdown:
    def test_two_categories_split_two_thirds_one_third(self):
        """100 / 50 -> 66.67 / 33.33."""
        lines = build_breakdown({"salaryBudget": 100, "travelBudget": 50})

        assert [line.category for line in lines] == ["Salary", "Travel/accommodation"]
        assert [line.percentage for line in lines] == [
            Decimal("66.67"),
            Decimal("33.33"),
        ]

    def test_all_zero_budget_has_empty_breakdown(self):
        summary = aggregate_budget({key: 0 for key, _ in BUDGET_CATEGORIES})

        assert summary.breakdown == []
        assert summary.total_requested == Decimal("0.00")
        assert summary.requested_percentage == Decimal("0.00")
        assert summary.co_financing_percentage == Decimal("0.00")

    def test_zero_and_invalid_categories_are_omitted(self):
        lines = build_breakdown(
            {
                "salaryBudget": 500,
                "travelBudget": 0,
                "equipmentBudget": "n/a",
                "trainingBudget": -100,
            }
        )
        assert [line.category for line in lines] == ["Salary"]
        assert lines[0].percentage == Decimal("100.00")

    def test_three_equal_categories_still_sum_to_one_hundred(self):
        lines = build_breakdown(
            {"salaryBudget": 100, "travelBudget": 100, "trainingBudget": 100}
        )
        assert sum(line.percentage for line in lines) == Decimal("100.00")
        assert sorted(line.percentage for line in lines) == [
            Decimal("33.33"),
            Decimal("33.33"),
            Decimal("33.34"),
        ]

    def test_categories_keep_display_order(self):
        data = {key: 10 for key, _ in reversed(BUDGET_CATEGORIES)}
        lines = build_breakdown(data)
        assert [line.category for line in lines] == [label for _, label in BUDGET_CATEGORIES]

    def test_zoho_row_uses_two_decimal_strings(self):
        line = BudgetLine("Salary", Decimal("100"), Decimal("66.67"))
        assert line.to_zoho() == {
            "Categories": "Salary",
            "Total_Contribution_BZD": "100.00",
            "Percentage": "66.67",
        }


# ============================================================================
# TOTALS AND SHARES
# ============================================================================


class TestAggregateBudget:
    def test_requested_and_co_financing_shares(self):
        """80 requested + 20 co-financing -> 80.00 / 20.00."""
        summary = aggregate_budget(
            {
                "salaryBudget": 80,
                "coFinancingEntries": [{"organization": "Partner", "contribution": 20}],
            }
        )
        assert summary.total_requested == Decimal("80.00")
        assert summary.total_co_financing == Decimal("20.00")
        assert summary.total_project_cost == Decimal("100.00")
        assert summary.requested_percentage == Decimal("80.00")
        assert summary.co_financing_percentage == Decimal("20.00")

    def test_shares_sum_to_one_hundred_when_rounding(self):
        summary = aggregate_budget({"salaryBudget": 2, "totalCoFinancing": 1})
        assert summary.co_financing_percentage == Decimal("33.33")
        assert summary.requested_percentage == Decimal("66.67")

    def test_total_co_financing_field_is_fallback_only(self):
        assert total_co_financing([], "100") == Decimal("100")
        assert total_co_financing(
            [{"contribution": 30}, {"contribution": "20"}], "999"
        ) == Decimal("50")

    def test_to_dict_is_camel_case(self):
        result = aggregate_budget({"salaryBudget": 100, "travelBudget": 50}).to_dict()
        assert result["totalRequested"] == 150.0
        assert result["totalCoFinancing"] == 0.0
        assert result["requestedPercentage"] == 100.0
        assert result["breakdown"][0] == {
            "category": "Salary",
            "amount": 100.0,
            "percentage": 66.67,
        }
