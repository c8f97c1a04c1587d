"""Condition evaluation shared by the If, Filter and Switch nodes.

A filter parameter looks like:

    {
        "options": {"caseSensitive": True, "typeValidation": "strict"},
        "combinator": "and",
        "conditions": [
            {
                "leftValue": "={{ $json.age }}",
                "rightValue": 18,
                "operator": {"type": "number", "operation": "gte"},
            }
        ],
    }

With strict type validation a value of the wrong type is an error. Loose
validation converts values to the operator type first.
"""
import json
import re
from datetime import datetime
from typing import Any, Callable, Optional

_TYPE_NAMES = {
    str: "string",
    bool: "boolean",
    int: "number",
    float: "number",
    list: "array",
    dict: "object",
    datetime: "dateTime",
}

SINGLE_VALUE_OPERATIONS = {"exists", "notExists", "empty", "notEmpty", "true", "false"}


class FilterError(ValueError):
    """A condition could not be evaluated."""

    def __init__(self, message: str, description: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.description = description


def _type_name(value: Any) -> str:
    for python_type, name in _TYPE_NAMES.items():
        if type(value) is python_type:
            return name
    return type(value).__name__


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise ValueError(value)


def _coerce(value: Any, expected: str) -> Any:
    """Convert a value for loose type validation."""
    if value is None:
        return None
    if expected == "string":
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)
    if expected == "number":
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (int, float)):
            return value
        return float(str(value).strip())
    if expected == "boolean":
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in ("true", "1"):
            return True
        if text in ("false", "0", ""):
            return False
        raise ValueError(value)
    if expected == "dateTime":
        return _parse_datetime(value)
    if expected in ("array", "object"):
        python_type = list if expected == "array" else dict
        if isinstance(value, str):
            value = json.loads(value)
        if not isinstance(value, python_type):
            raise ValueError(value)
        return value
    return value


def _validate(value: Any, expected: str, strict: bool, side: str, index: int) -> Any:
    if value is None or expected == "any":
        return value
    if strict:
        if expected == "dateTime" and isinstance(value, str):
            try:
                return _parse_datetime(value)
            except ValueError:
                pass
        elif expected == "number" and isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        elif _type_name(value) == expected:
            return value
        raise FilterError(
            f"Wrong type: '{value}' is a {_type_name(value)} but was expecting a {expected}",
            description=f"Condition {index + 1}, {side} value. "
            "Try changing the type of comparison or enable loose type validation",
        )
    try:
        return _coerce(value, expected)
    except (ValueError, TypeError):
        raise FilterError(
            f"Conversion error: the {side} value '{value}' can't be converted to {expected}",
            description=f"Condition {index + 1}",
        )


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict)):
        return len(value) == 0
    return False


def _compare_strings(case_sensitive: bool) -> dict[str, Callable[[Any, Any], bool]]:
    def norm(value: Any) -> str:
        text = "" if value is None else str(value)
        return text if case_sensitive else text.lower()

    def regex(left: Any, right: Any) -> bool:
        flags = 0 if case_sensitive else re.IGNORECASE
        pattern = str(right or "")
        match = re.fullmatch(r"/(.*)/([a-z]*)", pattern, re.DOTALL)
        if match:
            pattern = match.group(1)
            if "i" in match.group(2):
                flags |= re.IGNORECASE
        return re.search(pattern, "" if left is None else str(left), flags) is not None

    return {
        "equals": lambda left, right: norm(left) == norm(right),
        "notEquals": lambda left, right: norm(left) != norm(right),
        "contains": lambda left, right: norm(right) in norm(left),
        "notContains": lambda left, right: norm(right) not in norm(left),
        "startsWith": lambda left, right: norm(left).startswith(norm(right)),
        "notStartsWith": lambda left, right: not norm(left).startswith(norm(right)),
        "endsWith": lambda left, right: norm(left).endswith(norm(right)),
        "notEndsWith": lambda left, right: not norm(left).endswith(norm(right)),
        "regex": regex,
        "notRegex": lambda left, right: not regex(left, right),
    }


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(left: Any, right: Any) -> bool:
        if left is None or right is None:
            return False
        return compare(left, right)
    return check


_NUMBER_OPERATIONS = {
    "equals": lambda left, right: left == right,
    "notEquals": lambda left, right: left != right,
    "gt": _ordered(lambda left, right: left > right),
    "lt": _ordered(lambda left, right: left < right),
    "gte": _ordered(lambda left, right: left >= right),
    "lte": _ordered(lambda left, right: left <= right),
}

_DATETIME_OPERATIONS = {
    "equals": lambda left, right: left == right,
    "notEquals": lambda left, right: left != right,
    "after": _ordered(lambda left, right: left > right),
    "before": _ordered(lambda left, right: left < right),
    "afterOrEquals": _ordered(lambda left, right: left >= right),
    "beforeOrEquals": _ordered(lambda left, right: left <= right),
}

_BOOLEAN_OPERATIONS = {
    "true": lambda left, right: left is True,
    "false": lambda left, right: left is False,
    "equals": lambda left, right: left == right,
    "notEquals": lambda left, right: left != right,
}


def _array_operations(case_sensitive: bool) -> dict[str, Callable[[Any, Any], bool]]:
    def contains(left: Any, right: Any) -> bool:
        if left is None:
            return False
        if not case_sensitive and isinstance(right, str):
            return right.lower() in [v.lower() if isinstance(v, str) else v for v in left]
        return right in left

    def length(compare: Callable[[int, int], bool]) -> Callable[[Any, Any], bool]:
        def check(left: Any, right: Any) -> bool:
            if left is None:
                return False
            try:
                return compare(len(left), int(right))
            except (TypeError, ValueError):
                return False
        return check

    return {
        "contains": contains,
        "notContains": lambda left, right: not contains(left, right),
        "lengthEquals": length(lambda size, expected: size == expected),
        "lengthNotEquals": length(lambda size, expected: size != expected),
        "lengthGt": length(lambda size, expected: size > expected),
        "lengthLt": length(lambda size, expected: size < expected),
        "lengthGte": length(lambda size, expected: size >= expected),
        "lengthLte": length(lambda size, expected: size <= expected),
    }


def _operations(operator_type: str, case_sensitive: bool) -> dict[str, Callable[[Any, Any], bool]]:
    if operator_type == "string":
        return _compare_strings(case_sensitive)
    if operator_type == "number":
        return _NUMBER_OPERATIONS
    if operator_type == "dateTime":
        return _DATETIME_OPERATIONS
    if operator_type == "boolean":
        return _BOOLEAN_OPERATIONS
    if operator_type == "array":
        return _array_operations(case_sensitive)
    return {}


def evaluate_condition(
    condition: dict,
    index: int = 0,
    case_sensitive: bool = True,
    strict: bool = True,
) -> bool:
    """Evaluate one resolved condition."""
    operator = condition.get("operator") or {}
    operator_type = operator.get("type", "string")
    operation = operator.get("operation", "equals")
    left = condition.get("leftValue")
    right = condition.get("rightValue")

    if operation == "exists":
        return left is not None
    if operation == "notExists":
        return left is None
    if operation == "empty":
        return _is_empty(left)
    if operation == "notEmpty":
        return not _is_empty(left)

    left = _validate(left, operator_type, strict, "left", index)
    if operation not in SINGLE_VALUE_OPERATIONS and not operator.get("singleValue"):
        # Array operations compare against a scalar or a length
        right_type = operator_type if operator_type != "array" else "any"
        right = _validate(right, right_type, strict, "right", index)

    handlers = _operations(operator_type, case_sensitive)
    handler = handlers.get(operation)
    if handler is None:
        raise FilterError(f"Unknown operation '{operation}' for type '{operator_type}'")
    return handler(left, right)


def evaluate_filter(filter_value: dict, loose_type_validation: bool = False, ignore_case: bool = False) -> bool:
    """Evaluate a resolved filter parameter.

    Args:
        filter_value: Filter parameter with expressions already resolved
        loose_type_validation: Convert values instead of failing on type mismatch
        ignore_case: Compare strings case-insensitively

    Returns:
        Whether the item passes the filter
    """
    options = filter_value.get("options") or {}
    strict = options.get("typeValidation", "strict") == "strict" and not loose_type_validation
    case_sensitive = options.get("caseSensitive", True) and not ignore_case
    combinator = filter_value.get("combinator", "and")

    results = (
        evaluate_condition(condition, index, case_sensitive, strict)
        for index, condition in enumerate(filter_value.get("conditions") or [])
    )
    if combinator == "or":
        return any(results)
    return all(results)
