"""
Query conditions - normalization and in-memory matching.

A condition mapping goes from field name to either a literal (equality) or
an operator map using the keys below. All operators in one map must hold.
"""

from typing import Any, Dict, Mapping, Optional

from .errors import InvalidQuery
from .schema import is_scalar

RANGE_OPERATORS = ("gte", "gt", "lte", "lt")
MEMBERSHIP_OPERATOR = "includes"
OPERATORS = RANGE_OPERATORS + (MEMBERSHIP_OPERATOR,)


def is_operator_map(value: Any) -> bool:
    """True when value is a non-empty mapping made only of operator keys."""
    if not isinstance(value, Mapping) or not value:
        return False
    keys = {str(k) for k in value}
    operator_keys = keys & set(OPERATORS)
    if operator_keys and operator_keys != keys:
        raise InvalidQuery(
            f"Operator map mixes operators and plain keys: {sorted(keys)}; "
            f"supported operators are {list(OPERATORS)}"
        )
    return bool(operator_keys)


def normalize_conditions(conditions: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Stringify field names and operator keys; validates operator maps."""
    if conditions is None:
        return {}
    if not isinstance(conditions, Mapping):
        raise InvalidQuery(f"Conditions must be a mapping, got {type(conditions).__name__}")

    normalized = {}
    for field, value in conditions.items():
        field_name = str(field)
        if not field_name:
            raise InvalidQuery("Condition field name cannot be empty")
        if is_operator_map(value):
            value = {str(op): operand for op, operand in value.items()}
        normalized[field_name] = value
    return normalized


def is_selective(value: Any) -> bool:
    """Scalar equality and pure membership clauses count as selective."""
    if is_operator_map(value):
        return set(value) == {MEMBERSHIP_OPERATOR}
    return is_scalar(value)


def get_nested_field(document: Mapping[str, Any], field_path: str) -> Any:
    """Resolve a dotted path such as 'experience.years'; missing parts give None."""
    if field_path in document:
        return document[field_path]

    current: Any = document
    for key in field_path.split("."):
        if isinstance(current, Mapping):
            current = current.get(key)
        else:
            return None
    return current


def compare_values(actual: Any, operator: str, expected: Any) -> bool:
    if actual is None:
        return False

    if operator == MEMBERSHIP_OPERATOR:
        return isinstance(actual, (list, tuple)) and any(_values_equal(item, expected) for item in actual)

    # bool is an int subclass but never compares as a number here
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    try:
        if operator == "gte":
            return actual >= expected
        if operator == "gt":
            return actual > expected
        if operator == "lte":
            return actual <= expected
        if operator == "lt":
            return actual < expected
    except TypeError:
        # Mixed types (e.g. str vs int) never match a range
        return False
    raise InvalidQuery(f"Unknown operator: {operator}")


def _values_equal(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool) != isinstance(expected, bool):
        return False
    return actual == expected


def matches_conditions(document: Mapping[str, Any], conditions: Mapping[str, Any]) -> bool:
    """Check a document against normalized conditions."""
    for field, expected in conditions.items():
        actual = get_nested_field(document, field)
        if is_operator_map(expected):
            if not all(compare_values(actual, op, operand) for op, operand in expected.items()):
                return False
        elif not _values_equal(actual, expected):
            return False
    return True
