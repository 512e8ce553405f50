"""
Unit Tests for Conditional Display Rules
"""

import pytest

from services.forms.conditions import evaluate_rule, is_field_visible, visible_fields


def _rule(operator, value=None, field_id="fldRole"):
    return {"fieldId": field_id, "operator": operator, "value": value}


class TestEvaluateRule:
    """Tests for single rule evaluation."""

    def test_equals_is_case_insensitive(self):
        assert evaluate_rule(_rule("equals", "engineer"), {"fldRole": "Engineer"}) is True

    def test_not_equals(self):
        assert evaluate_rule(_rule("not_equals", "Designer"), {"fldRole": "Engineer"}) is True
        assert evaluate_rule(_rule("not_equals", "Engineer"), {"fldRole": "Engineer"}) is False

    def test_equals_on_multi_select(self):
        answers = {"fldRole": ["Go", "Python"]}
        assert evaluate_rule(_rule("equals", ["python", "go"]), answers) is True
        assert evaluate_rule(_rule("equals", "Python"), answers) is False

    def test_contains_text(self):
        assert evaluate_rule(_rule("contains", "ngin"), {"fldRole": "Engineer"}) is True

    def test_contains_list_membership(self):
        answers = {"fldRole": ["Go", "Python"]}
        assert evaluate_rule(_rule("contains", "python"), answers) is True
        assert evaluate_rule(_rule("not_contains", "Rust"), answers) is True

    def test_contains_missing_answer(self):
        assert evaluate_rule(_rule("contains", "x"), {}) is False

    @pytest.mark.parametrize("answer", [None, "", "   ", []])
    def test_is_empty(self, answer):
        assert evaluate_rule(_rule("is_empty"), {"fldRole": answer}) is True
        assert evaluate_rule(_rule("is_not_empty"), {"fldRole": answer}) is False

    def test_unknown_operator_raises(self):
        with pytest.raises(ValueError):
            evaluate_rule(_rule("greater_than", 1), {"fldRole": 2})


class TestVisibility:
    """Tests for field visibility."""

    def test_hidden_flag_wins(self):
        field = {"airtableFieldId": "f", "isVisible": False, "showWhen": []}
        assert is_field_visible(field, {}) is False

    def test_rules_are_anded(self):
        field = {
            "airtableFieldId": "f",
            "isVisible": True,
            "showWhen": [_rule("equals", "Engineer"), _rule("is_not_empty", field_id="fldName")],
        }

        assert is_field_visible(field, {"fldRole": "Engineer", "fldName": "Ada"}) is True
        assert is_field_visible(field, {"fldRole": "Engineer"}) is False

    def test_visible_fields_sorted_by_order(self):
        fields = [
            {"airtableFieldId": "b", "order": 2},
            {"airtableFieldId": "a", "order": 0},
            {"airtableFieldId": "c", "order": 1, "showWhen": [_rule("equals", "x", field_id="a")]},
        ]

        result = visible_fields(fields, {"a": "y"})

        assert [f["airtableFieldId"] for f in result] == ["a", "b"]
