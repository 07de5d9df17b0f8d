"""
Condition Predicates — branch conditions evaluated by conditional nodes.

A conditional node reads one field of an upstream form submission and
tests it against its branches in declaration order. This module holds
the condition vocabulary (which conditions make sense for which field
type) and the predicate for each condition.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from logging import getLogger
from typing import Any, Dict, List, Optional

from psa_workflow.workflow.workflow_model import Branch, FieldType

logger = getLogger(__name__)

BRANCH_COLORS = ["#3B82F6", "#10B981", "#F59E0B", "#EF4444", "#8B5CF6"]


class ConditionType(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_OR_EQUAL = "greater_or_equal"
    LESS_OR_EQUAL = "less_or_equal"
    BETWEEN = "between"
    BEFORE = "before"
    AFTER = "after"
    IS_CHECKED = "is_checked"
    IS_NOT_CHECKED = "is_not_checked"


C = ConditionType

_EMPTINESS = [C.IS_EMPTY, C.IS_NOT_EMPTY]
_TEXT = [C.EQUALS, C.CONTAINS, C.STARTS_WITH, C.ENDS_WITH] + _EMPTINESS

CONDITION_TYPES_BY_FIELD: Dict[FieldType, List[ConditionType]] = {
    FieldType.TEXT: _TEXT,
    FieldType.TEXTAREA: _TEXT,
    FieldType.EMAIL: [C.EQUALS, C.CONTAINS, C.ENDS_WITH] + _EMPTINESS,
    FieldType.URL: [C.EQUALS, C.CONTAINS, C.STARTS_WITH] + _EMPTINESS,
    FieldType.NUMBER: [
        C.EQUALS, C.GREATER_THAN, C.LESS_THAN,
        C.GREATER_OR_EQUAL, C.LESS_OR_EQUAL, C.BETWEEN,
    ] + _EMPTINESS,
    FieldType.DATE: [C.EQUALS, C.BEFORE, C.AFTER, C.BETWEEN] + _EMPTINESS,
    FieldType.DROPDOWN: [C.EQUALS] + _EMPTINESS,
    FieldType.MULTISELECT: [C.CONTAINS] + _EMPTINESS,
    FieldType.CHECKBOX: [C.IS_CHECKED, C.IS_NOT_CHECKED],
}

# Conditions that take no comparison value.
VALUELESS_CONDITIONS = frozenset({C.IS_EMPTY, C.IS_NOT_EMPTY, C.IS_CHECKED, C.IS_NOT_CHECKED})


def condition_types_for(field_type: FieldType) -> List[ConditionType]:
    return list(CONDITION_TYPES_BY_FIELD.get(field_type, []))


def branch_problem(branch: Branch, field_type: Optional[FieldType]) -> Optional[str]:
    """Describe why a branch cannot be evaluated, or None if it can.

    ``field_type`` is None when the source field could not be resolved;
    only the field-independent checks run then.
    """
    try:
        ctype = ConditionType(branch.condition_type)
    except ValueError:
        return f"unknown condition type '{branch.condition_type}'"

    if field_type is not None and ctype not in CONDITION_TYPES_BY_FIELD.get(field_type, []):
        return f"'{ctype.value}' is not available for {field_type.value} fields"
    if ctype not in VALUELESS_CONDITIONS and not branch.value:
        return f"'{ctype.value}' needs a comparison value"
    if ctype == C.BETWEEN and not branch.value2:
        return "'between' needs both a lower and an upper value"
    return None


# ============================================================================
# Value coercion
# ============================================================================


def _to_number(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        try:
            return float(v.strip())
        except ValueError:
            return None
    return None


def _to_date(v: Any) -> Optional[date]:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if not isinstance(v, str) or not v.strip():
        return None
    s = v.strip()
    try:
        return date.fromisoformat(s)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _to_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def is_empty_value(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, str):
        return not v.strip()
    if isinstance(v, (list, tuple, set)):
        return len(v) == 0
    return False


def _is_checked(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, str):
        return v.strip().lower() in ("true", "yes")
    return False


# ============================================================================
# Evaluation
# ============================================================================


def _compare(ctype: ConditionType, actual: Any, expected: str, expected2: Optional[str]) -> bool:
    if ctype == C.EQUALS:
        if isinstance(actual, (list, tuple)):
            return [_to_text(x) for x in actual] == [expected]
        if isinstance(actual, (int, float)) and not isinstance(actual, bool):
            b = _to_number(expected)
            return b is not None and float(actual) == b
        return _to_text(actual) == expected

    if ctype == C.CONTAINS:
        if isinstance(actual, (list, tuple, set)):
            return expected in {_to_text(x) for x in actual}
        return expected in _to_text(actual)
    if ctype == C.STARTS_WITH:
        return _to_text(actual).startswith(expected)
    if ctype == C.ENDS_WITH:
        return _to_text(actual).endswith(expected)

    if ctype == C.IS_EMPTY:
        return is_empty_value(actual)
    if ctype == C.IS_NOT_EMPTY:
        return not is_empty_value(actual)
    if ctype == C.IS_CHECKED:
        return _is_checked(actual)
    if ctype == C.IS_NOT_CHECKED:
        return not _is_checked(actual)

    if ctype in (C.GREATER_THAN, C.LESS_THAN, C.GREATER_OR_EQUAL, C.LESS_OR_EQUAL):
        a, b = _to_number(actual), _to_number(expected)
        if a is None or b is None:
            return False
        if ctype == C.GREATER_THAN:
            return a > b
        if ctype == C.LESS_THAN:
            return a < b
        if ctype == C.GREATER_OR_EQUAL:
            return a >= b
        return a <= b

    if ctype == C.BETWEEN:
        lo, hi, x = _to_number(expected), _to_number(expected2), _to_number(actual)
        if None not in (lo, hi, x):
            return lo <= x <= hi
        dlo, dhi, dx = _to_date(expected), _to_date(expected2), _to_date(actual)
        if None not in (dlo, dhi, dx):
            return dlo <= dx <= dhi
        return False

    if ctype in (C.BEFORE, C.AFTER):
        a, b = _to_date(actual), _to_date(expected)
        if a is None or b is None:
            return False
        return a < b if ctype == C.BEFORE else a > b

    return False


def evaluate_condition(branch: Branch, field_value: Any) -> bool:
    """Test one branch against a submitted field value.

    Text conditions are case-sensitive. Values that do not parse as the
    condition requires (a non-numeric value for ``greater_than``) do not
    match. Unknown condition types never match.
    """
    try:
        ctype = ConditionType(branch.condition_type)
    except ValueError:
        logger.warning(f"Unknown condition type '{branch.condition_type}' on branch {branch.id}")
        return False
    return _compare(ctype, field_value, branch.value, branch.value2)


def first_matching_branch(branches: List[Branch], field_value: Any) -> Optional[Branch]:
    """First branch, in declaration order, whose condition holds."""
    for branch in branches:
        if evaluate_condition(branch, field_value):
            return branch
    return None


def describe_branch(field_label: str, branch: Branch) -> str:
    """Human-readable label for a branch, e.g. ``Budget > 1000``."""
    v, v2 = branch.value, branch.value2
    labels = {
        "equals": f'{field_label} = "{v}"',
        "contains": f'{field_label} contains "{v}"',
        "starts_with": f'{field_label} starts with "{v}"',
        "ends_with": f'{field_label} ends with "{v}"',
        "is_empty": f"{field_label} is empty",
        "is_not_empty": f"{field_label} has value",
        "greater_than": f"{field_label} > {v}",
        "less_than": f"{field_label} < {v}",
        "greater_or_equal": f"{field_label} >= {v}",
        "less_or_equal": f"{field_label} <= {v}",
        "between": f"{field_label} {v}-{v2}",
        "before": f"{field_label} before {v}",
        "after": f"{field_label} after {v}",
        "is_checked": f"{field_label} = Yes",
        "is_not_checked": f"{field_label} = No",
    }
    return labels.get(branch.condition_type, f"{field_label} {branch.condition_type} {v}".strip())


def make_branch(
    field_label: str,
    condition_type: str,
    value: Any = "",
    value2: Any = None,
    index: int = 0,
    branch_id: Optional[str] = None,
) -> Branch:
    """Build a branch with a generated label and palette color."""
    kwargs: Dict[str, Any] = {
        "condition_type": condition_type,
        "value": "" if value is None else value,
        "value2": value2,
        "color": BRANCH_COLORS[index % len(BRANCH_COLORS)],
    }
    if branch_id:
        kwargs["id"] = branch_id
    branch = Branch(**kwargs)
    branch.label = describe_branch(field_label, branch)
    return branch
