"""
Unit Tests for the Zoho field mapper

Usage:
    pytest backend/tests/test_field_mapper.py -v
"""

import os
import sys
from datetime import date, datetime

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from gap_portal.services.field_mapper import (  # noqa: E402
    MAX_SAFE_INTEGER,
    ExternalIdentifier,
    TextValue,
    classify_value,
    duration_in_days,
    format_zoho_date,
    map_concept_fields,
    map_proposal_fields,
    summarize_co_financing,
)


# ============================================================================
# TEST DATA FACTORIES
# ============================================================================


def make_proposal(**overrides):
    data = {
        "projectTitle": "Mangrove Nursery Expansion",
        "organizationName": "Coastal Friends",
        "proposedStartDate": "2024-03-05",
        "expectedEndDate": "2024-04-04",
        "sep": "Quarterly community meetings",
        "projectDescription": "Expand the nursery.",
        "sustainabilityReplication": "Volunteer-run after year one.",
        "projectGoal": "Restore 5 ha of mangroves",
        "proposalVillageOrCity": "Dangriga",
        "district": "Stann Creek",
        "proposalProjectLocation": "South lagoon",
    }
    data.update(overrides)
    return data


def make_concept(**overrides):
    data = {
        "projectTitle": "Reef Watch",
        "organizationName": "Blue Belize",
        "organizationAddress": "1 Front St",
        "organizationType": "NGO",
        "dateOfIncorporation": "2015-06-01",
        "contactName": "Ana Cho",
        "contactPosition": "Director",
        "contactEmail": "ana@example.org",
        "contactTelephone": "+501 600-0000",
        "proposedStartDate": "2025-01-15",
        "durationMonths": 12.0,
        "awardCategory": "Small Grant",
        "thematicArea": "Marine",
        "projectSummary": "Monitoring reefs.",
        "projectGoalObjectives": "Protect reefs.",
        "projectOutputsActivities": "Surveys.",
        "salaryBudget": 100,
        "travelBudget": 50,
        "coFinancingEntries": [
            {"organization": "Partner Org", "contribution": 50, "percentage": 25},
        ],
        "legalRepresentativeName": "Ana Cho",
        "declarationDate": "2025-01-02",
    }
    data.update(overrides)
    return data


# ============================================================================
# DATES
# ============================================================================


class TestFormatZohoDate:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-03-05", "05-Mar-2024"),
            ("2024-12-31T18:00:00.000Z", "31-Dec-2024"),
            (date(2023, 1, 9), "09-Jan-2023"),
            (datetime(2022, 7, 4, 12, 0), "04-Jul-2022"),
        ],
    )
    def test_valid_dates(self, value, expected):
        assert format_zoho_date(value) == expected

    @pytest.mark.parametrize("value", [None, "", "not a date", "2024-13-45", 20240305])
    def test_invalid_dates_yield_none(self, value):
        assert format_zoho_date(value) is None


class TestDurationInDays:
    @pytest.mark.parametrize(
        "start,end,expected",
        [
            ("2024-03-05", "2024-04-04", 30),
            ("2024-01-01T00:00:00", "2024-01-02T06:00:00", 2),
            ("2024-01-01T00:00:00Z", "2024-01-01T18:00:00-06:00", 1),
            (date(2024, 1, 1), datetime(2024, 1, 1, 0, 0, 1), 1),
            ("2024-01-10", "2024-01-10", 0),
        ],
    )
    def test_partial_days_round_up(self, start, end, expected):
        assert duration_in_days(start, end) == expected

    def test_unparseable_is_none(self):
        assert duration_in_days("2024-01-01", "bogus") is None
        assert duration_in_days(None, "2024-01-01") is None


# ============================================================================
# VALUE CLASSIFICATION
# ============================================================================


class TestClassifyValue:
    def test_long_digit_strings_are_identifiers(self):
        assert isinstance(classify_value("408900000012345"), ExternalIdentifier)
        assert isinstance(classify_value("40890000001234"), TextValue)

    def test_integers_beyond_safe_range_are_identifiers(self):
        assert isinstance(classify_value(MAX_SAFE_INTEGER + 1), ExternalIdentifier)
        assert isinstance(classify_value(-(MAX_SAFE_INTEGER + 1)), ExternalIdentifier)
        assert classify_value(MAX_SAFE_INTEGER) == TextValue(MAX_SAFE_INTEGER)

    def test_empty_values_are_absent(self):
        assert classify_value(None) is None
        assert classify_value("") is None

    def test_ordinary_values_are_text(self):
        assert classify_value("Reef Watch") == TextValue("Reef Watch")
        assert classify_value(0) == TextValue(0)
        assert classify_value(False) == TextValue(False)


# ============================================================================
# PROPOSAL MAPPING
# ============================================================================


class TestProposalMapping:
    def test_maps_all_proposal_fields(self):
        mapped = map_proposal_fields(make_proposal())

        assert mapped["Project_Title"] == "Mangrove Nursery Expansion"
        assert mapped["Project_title1"] == "Mangrove Nursery Expansion"
        assert mapped["Proposed_Start_Date"] == "05-Mar-2024"
        assert mapped["Recipient_Organization"] == "Coastal Friends"
        assert mapped["Stakeholder_Engagement_Plan_SEP"] == "Quarterly community meetings"
        assert mapped["SUMMARY"] == "Expand the nursery."
        assert mapped["SUSTAINABILITY_REPLICATION1"] == "Volunteer-run after year one."
        assert mapped["Project_Duration1"] == "30 days"
        assert mapped["Project_Goal"] == mapped["Project_Goal1"] == "Restore 5 ha of mangroves"
        assert mapped["Project_Location"] == "Dangriga, Stann Creek, South lagoon"

    def test_location_skips_empty_parts(self):
        mapped = map_proposal_fields(make_proposal(district="", proposalProjectLocation=None))
        assert mapped["Project_Location"] == "Dangriga"

    def test_duration_needs_both_dates(self):
        mapped = map_proposal_fields(make_proposal(expectedEndDate="bogus"))
        assert "Project_Duration1" not in mapped
        assert mapped["Proposed_Start_Date"] == "05-Mar-2024"

    def test_identifier_values_are_not_forwarded(self):
        mapped = map_proposal_fields(make_proposal(organizationName="4089000000123456"))
        assert "Recipient_Organization" not in mapped
        assert mapped["Project_Title"] == "Mangrove Nursery Expansion"

    def test_missing_fields_are_omitted(self):
        assert map_proposal_fields({"projectTitle": "Only a title"}) == {
            "Project_Title": "Only a title",
            "Project_title1": "Only a title",
        }


# ============================================================================
# CONCEPT MAPPING
# ============================================================================


class TestConceptMapping:
    def test_maps_background_contact_and_content(self):
        mapped = map_concept_fields(make_concept())

        assert mapped["Project_Title"] == "Reef Watch"
        assert mapped["Organization_Name"] == "Blue Belize"
        assert mapped["Organization_Address"] == "1 Front St"
        assert mapped["Type_of_Organization"] == "NGO"
        assert mapped["Date_of_Incorporation_of_Organization"] == "01-Jun-2015"
        assert mapped["Contact_Name"] == "Ana Cho"
        assert mapped["Position"] == "Director"
        assert mapped["Email"] == "ana@example.org"
        assert mapped["Telephone"] == "+501 600-0000"
        assert mapped["Proposed_Start_Date"] == "15-Jan-2025"
        assert mapped["Duration_Months"] == 12
        assert mapped["Award_Category1"] == "Small Grant"
        assert mapped["Project_Theme"] == "Marine"
        assert mapped["Project_Summary"] == "Monitoring reefs."
        assert mapped["Project_Goal_and_Objectives"] == "Protect reefs."
        assert mapped["Project_Outputs_and_Activities"] == "Surveys."
        assert mapped["Legal_Representative_Name"] == "Ana Cho"
        assert mapped["Declaration_Date"] == "02-Jan-2025"

    def test_budget_totals_and_subform(self):
        mapped = map_concept_fields(make_concept())

        assert mapped["Total2"] == "150.00"
        assert mapped["Total_Co_Financing"] == "50.00"
        assert mapped["Total_Project_Estimated_Cost"] == "200.00"
        assert mapped["Total_Project_Estimated_Cost_Percentage"] == "100.00"
        assert mapped["Total_Co_Financing_Percentage"] == "25.00"
        assert mapped["Project_Budget_Summary"] == [
            {"Categories": "Salary", "Total_Contribution_BZD": "100.00", "Percentage": "66.67"},
            {
                "Categories": "Travel/accommodation",
                "Total_Contribution_BZD": "50.00",
                "Percentage": "33.33",
            },
        ]
        assert mapped["Co_Financing_Details"] == "Partner Org: $50 (25%)"

    def test_zero_budget_sends_no_totals(self):
        mapped = map_concept_fields(
            make_concept(salaryBudget=0, travelBudget=0, coFinancingEntries=[])
        )
        for field in (
            "Total2",
            "Total_Co_Financing",
            "Total_Project_Estimated_Cost",
            "Total_Co_Financing_Percentage",
            "Project_Budget_Summary",
            "Co_Financing_Details",
        ):
            assert field not in mapped

    def test_one_bad_field_does_not_block_the_rest(self):
        mapped = map_concept_fields(make_concept(coFinancingEntries=5))

        assert "Co_Financing_Details" not in mapped
        assert mapped["Project_Title"] == "Reef Watch"
        assert mapped["Declaration_Date"] == "02-Jan-2025"


class TestCoFinancingDetails:
    def test_skips_entries_without_organization_or_contribution(self):
        details = summarize_co_financing(
            [
                {"organization": "Org A", "contribution": 5000, "percentage": 20},
                {"organization": "", "contribution": 100, "percentage": 1},
                {"organization": "Org C", "contribution": 0, "percentage": 0},
                {"organization": "Org B", "contribution": 2500.5, "percentage": 10.5},
            ]
        )
        assert details == "Org A: $5000 (20%); Org B: $2500.5 (10.5%)"
