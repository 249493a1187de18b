"""
Condition evaluation for skip and branch rules.

Each Operator member has exactly one branch below; an operator without a
branch raises instead of silently evaluating to False.

Semantics:
- equals / not-equals: strict value equality (booleans never equal numbers,
  list answers compare element-wise)
- contains: list membership for list answers, substring for string answers,
  False otherwise
- greater-than / less-than: both operands coerced to numbers; a value that
  cannot be coerced behaves like NaN, so the comparison is False
"""

import math
from typing import Any

from backend.contracts import Operator


def evaluate_condition(operator: Operator, stored: Any, expected: Any) -> bool:
    """
    Evaluate a rule condition against a stored answer value.

    Args:
        operator: Comparison operator
        stored: Value recorded in AnswerData.value
        expected: Value declared on the rule

    Returns:
        bool: Condition result

    Raises:
        ValueError: If operator is not a known Operator
    """
    operator = Operator(operator)

    if operator is Operator.EQUALS:
        return strict_equals(stored, expected)

    if operator is Operator.NOT_EQUALS:
        return not strict_equals(stored, expected)

    if operator is Operator.CONTAINS:
        if isinstance(stored, (list, tuple)):
            return any(strict_equals(item, expected) for item in stored)
        if isinstance(stored, str):
            return str(expected) in stored
        return False

    if operator is Operator.GREATER_THAN:
        return to_number(stored) > to_number(expected)

    if operator is Operator.LESS_THAN:
        return to_number(stored) < to_number(expected)

    raise ValueError(f"Unsupported operator: {operator!r}")


def strict_equals(left: Any, right: Any) -> bool:
    """Type-aware equality: True != 1, [a, b] == (a, b)."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right

    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        if len(left) != len(right):
            return False
        return all(strict_equals(a, b) for a, b in zip(left, right))

    if isinstance(left, (list, tuple)) or isinstance(right, (list, tuple)):
        return False

    if _both_numbers(left, right):
        return left == right

    return type(left) is type(right) and left == right


def to_number(value: Any) -> float:
    """
    Coerce a value to float.

    Booleans map to 1.0/0.0, numeric strings are parsed, anything else
    (None, lists, blank or non-numeric strings) becomes NaN.
    """
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value.strip())
        except ValueError:
            return math.nan
    return math.nan


def _both_numbers(left: Any, right: Any) -> bool:
    return isinstance(left, (int, float)) and isinstance(right, (int, float))
