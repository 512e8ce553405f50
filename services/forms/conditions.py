"""
Conditional Display Rules

Decides which form fields are shown to a respondent given the answers so
far. A field is shown when its isVisible flag is set and every rule in its
showWhen list holds (rules are ANDed). Rules are evaluated against the raw
submitted answers.

Operators:
    equals / not_equals     - case-insensitive string comparison; a
                              multi-select answer equals a scalar only when
                              it holds exactly that one choice
    contains / not_contains - substring for text, membership for lists
    is_empty / is_not_empty - see derivations.is_empty_value
"""

from typing import Any, Dict, List

from config.constants import RuleOperator
from services.forms.derivations import is_empty_value


def _norm(value: Any) -> str:
    return str(value).strip().lower()


def _equals(answer: Any, expected: Any) -> bool:
    if isinstance(answer, list):
        expected_list = expected if isinstance(expected, list) else [expected]
        return sorted(_norm(v) for v in answer) == sorted(_norm(v) for v in expected_list)
    if answer is None:
        return expected is None or _norm(expected) == ""
    return _norm(answer) == _norm(expected)


def _contains(answer: Any, expected: Any) -> bool:
    if answer is None or expected is None:
        return False
    if isinstance(answer, list):
        return _norm(expected) in {_norm(v) for v in answer}
    return _norm(expected) in _norm(answer)


def evaluate_rule(rule: Dict[str, Any], answers: Dict[str, Any]) -> bool:
    """Evaluate one {fieldId, operator, value} rule against {fieldId: value}."""
    answer = answers.get(rule.get("fieldId"))
    expected = rule.get("value")
    operator = RuleOperator(rule.get("operator"))

    if operator is RuleOperator.EQUALS:
        return _equals(answer, expected)
    if operator is RuleOperator.NOT_EQUALS:
        return not _equals(answer, expected)
    if operator is RuleOperator.CONTAINS:
        return _contains(answer, expected)
    if operator is RuleOperator.NOT_CONTAINS:
        return not _contains(answer, expected)
    if operator is RuleOperator.IS_EMPTY:
        return is_empty_value(answer)
    return not is_empty_value(answer)


def is_field_visible(field: Dict[str, Any], answers: Dict[str, Any]) -> bool:
    if not field.get("isVisible", True):
        return False
    return all(evaluate_rule(rule, answers) for rule in field.get("showWhen") or [])


def visible_fields(fields: List[Dict[str, Any]], answers: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Fields shown for these answers, in display order."""
    ordered = sorted(fields or [], key=lambda f: f.get("order", 0))
    return [field for field in ordered if is_field_visible(field, answers)]
