"""
Condition predicate tests.
"""

import pytest

from psa_workflow.workflow.conditions import (
    BRANCH_COLORS,
    ConditionType,
    branch_problem,
    condition_types_for,
    describe_branch,
    evaluate_condition,
    first_matching_branch,
    make_branch,
)
from psa_workflow.workflow.workflow_model import Branch, FieldType


def branch(condition_type, value="", value2=None, branch_id=None):
    kwargs = {"condition_type": condition_type, "value": value, "value2": value2}
    if branch_id:
        kwargs["id"] = branch_id
    return Branch(**kwargs)


# =============================================================================
# Predicates
# =============================================================================


class TestTextConditions:
    def test_equals_is_exact_and_case_sensitive(self):
        assert evaluate_condition(branch("equals", "High"), "High")
        assert not evaluate_condition(branch("equals", "High"), "high")

    def test_equals_on_strings_is_exact(self):
        """Zip and account codes must not be read as numbers."""
        assert not evaluate_condition(branch("equals", "01234"), "1234")
        assert not evaluate_condition(branch("equals", "1e3"), "1000")
        assert not evaluate_condition(branch("equals", "10"), "10.0")
        assert evaluate_condition(branch("equals", "01234"), "01234")

    def test_equals_on_submitted_numbers(self):
        assert evaluate_condition(branch("equals", "10"), 10.0)
        assert evaluate_condition(branch("equals", "10"), 10)
        assert not evaluate_condition(branch("equals", "10"), 11)
        assert not evaluate_condition(branch("equals", "1"), True)

    def test_contains_starts_ends(self):
        assert evaluate_condition(branch("contains", "sign"), "Redesign website")
        assert not evaluate_condition(branch("contains", "Sign"), "Redesign website")
        assert evaluate_condition(branch("starts_with", "https://"), "https://example.com")
        assert evaluate_condition(branch("ends_with", "@acme.com"), "ana@acme.com")
        assert not evaluate_condition(branch("ends_with", "@ACME.com"), "ana@acme.com")

    def test_contains_on_multiselect_checks_membership(self):
        assert evaluate_condition(branch("contains", "Design"), ["Design", "Build"])
        assert not evaluate_condition(branch("contains", "Des"), ["Design", "Build"])

    @pytest.mark.parametrize("value", [None, "", "   ", []])
    def test_is_empty(self, value):
        assert evaluate_condition(branch("is_empty"), value)
        assert not evaluate_condition(branch("is_not_empty"), value)

    def test_zero_is_not_empty(self):
        assert evaluate_condition(branch("is_not_empty"), 0)


class TestNumericConditions:
    def test_comparisons(self):
        assert evaluate_condition(branch("greater_than", "10"), 11)
        assert not evaluate_condition(branch("greater_than", "10"), 10)
        assert evaluate_condition(branch("greater_or_equal", "10"), 10)
        assert evaluate_condition(branch("less_than", "10"), "9.5")
        assert evaluate_condition(branch("less_or_equal", "10"), 10)

    def test_unparseable_values_do_not_match(self):
        assert not evaluate_condition(branch("greater_than", "10"), "lots")
        assert not evaluate_condition(branch("less_than", "10"), None)
        assert not evaluate_condition(branch("greater_than", "ten"), 11)

    def test_between_is_inclusive(self):
        b = branch("between", "5", "10")
        assert evaluate_condition(b, 5)
        assert evaluate_condition(b, 10)
        assert evaluate_condition(b, "7")
        assert not evaluate_condition(b, 11)
        assert not evaluate_condition(b, 4.99)


class TestDateConditions:
    def test_before_and_after(self):
        assert evaluate_condition(branch("before", "2024-02-01"), "2024-01-31")
        assert not evaluate_condition(branch("before", "2024-02-01"), "2024-02-01")
        assert evaluate_condition(branch("after", "2024-02-01"), "2024-02-02T09:30:00Z")

    def test_between_dates(self):
        b = branch("between", "2024-01-01", "2024-12-31")
        assert evaluate_condition(b, "2024-06-15")
        assert evaluate_condition(b, "2024-12-31")
        assert not evaluate_condition(b, "2025-01-01")

    def test_invalid_date_does_not_match(self):
        assert not evaluate_condition(branch("before", "2024-02-01"), "someday")


class TestCheckboxConditions:
    @pytest.mark.parametrize("value", [True, "true", "yes", "Yes"])
    def test_checked(self, value):
        assert evaluate_condition(branch("is_checked"), value)
        assert not evaluate_condition(branch("is_not_checked"), value)

    @pytest.mark.parametrize("value", [False, None, "false", ""])
    def test_not_checked(self, value):
        assert evaluate_condition(branch("is_not_checked"), value)


def test_unknown_condition_never_matches():
    assert not evaluate_condition(branch("matches_regex", ".*"), "anything")


# =============================================================================
# First match
# =============================================================================


class TestFirstMatchingBranch:
    def test_declaration_order_wins(self):
        b1 = branch("greater_than", "10", branch_id="B1")
        b2 = branch("greater_than", "5", branch_id="B2")
        for _ in range(5):
            assert first_matching_branch([b1, b2], 20).id == "B1"
        assert first_matching_branch([b2, b1], 20).id == "B2"

    def test_later_branch_when_earlier_fails(self):
        b1 = branch("greater_than", "10", branch_id="B1")
        b2 = branch("greater_than", "5", branch_id="B2")
        assert first_matching_branch([b1, b2], 7).id == "B2"

    def test_no_match(self):
        assert first_matching_branch([branch("greater_than", "10")], 1) is None
        assert first_matching_branch([], 1) is None


# =============================================================================
# Vocabulary and branch building
# =============================================================================


class TestVocabulary:
    def test_condition_types_per_field(self):
        assert condition_types_for(FieldType.CHECKBOX) == [
            ConditionType.IS_CHECKED, ConditionType.IS_NOT_CHECKED,
        ]
        assert ConditionType.BETWEEN in condition_types_for(FieldType.NUMBER)
        assert ConditionType.BEFORE in condition_types_for(FieldType.DATE)
        assert ConditionType.GREATER_THAN not in condition_types_for(FieldType.TEXT)

    def test_branch_problem(self):
        assert branch_problem(branch("greater_than", "5"), FieldType.NUMBER) is None
        assert branch_problem(branch("is_empty"), FieldType.TEXT) is None
        assert "not available" in branch_problem(branch("contains", "x"), FieldType.NUMBER)
        assert "needs a comparison value" in branch_problem(branch("equals"), FieldType.TEXT)
        assert "between" in branch_problem(branch("between", "1"), FieldType.NUMBER)
        assert "unknown" in branch_problem(branch("approx", "1"), None)

    def test_branch_problem_without_field_type(self):
        assert branch_problem(branch("contains", "x"), None) is None


class TestMakeBranch:
    def test_label_and_color(self):
        b = make_branch("Budget", "greater_than", 1000, index=6)
        assert b.label == "Budget > 1000"
        assert b.value == "1000"
        assert b.color == BRANCH_COLORS[1]

    def test_between_label(self):
        b = make_branch("Budget", "between", 1, 5, branch_id="mid")
        assert b.id == "mid"
        assert b.value2 == "5"
        assert describe_branch("Budget", b) == "Budget 1-5"

    def test_checkbox_label(self):
        assert make_branch("Rush", "is_checked").label == "Rush = Yes"
