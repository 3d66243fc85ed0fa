"""Threshold comparison for automation rules.

Comparisons are exact. Thresholds are user-entered discrete values, so EQ and
NE apply no tolerance even for floating point sensor values.
"""

import operator as _op
from typing import Callable

from automation_engine.core.exceptions import RuleValidationError
from automation_engine.models.enums import ComparisonOperator

_COMPARATORS: dict[ComparisonOperator, Callable[[float, float], bool]] = {
    ComparisonOperator.GT: _op.gt,
    ComparisonOperator.LT: _op.lt,
    ComparisonOperator.GTE: _op.ge,
    ComparisonOperator.LTE: _op.le,
    ComparisonOperator.EQ: _op.eq,
    ComparisonOperator.NE: _op.ne,
}

# Names used by the dashboard's rule builder
_OPERATOR_ALIASES = {
    "greater_than": ComparisonOperator.GT,
    "less_than": ComparisonOperator.LT,
    "greater_than_or_equal": ComparisonOperator.GTE,
    "less_than_or_equal": ComparisonOperator.LTE,
    "equals": ComparisonOperator.EQ,
    "not_equals": ComparisonOperator.NE,
    ">": ComparisonOperator.GT,
    "<": ComparisonOperator.LT,
    ">=": ComparisonOperator.GTE,
    "<=": ComparisonOperator.LTE,
    "==": ComparisonOperator.EQ,
    "!=": ComparisonOperator.NE,
}


def parse_operator(value: ComparisonOperator | str) -> ComparisonOperator:
    if isinstance(value, ComparisonOperator):
        return value
    if not isinstance(value, str):
        raise RuleValidationError(f"operator must be a string, got {type(value).__name__}")

    normalized = value.strip()
    if normalized.upper() in ComparisonOperator.__members__:
        return ComparisonOperator[normalized.upper()]
    if normalized.lower() in _OPERATOR_ALIASES:
        return _OPERATOR_ALIASES[normalized.lower()]

    allowed = ", ".join(member.value for member in ComparisonOperator)
    raise RuleValidationError(f"unsupported operator {value!r} (expected one of {allowed})")


def evaluate(operator: ComparisonOperator | str, sensor_value: float, threshold_value: float) -> bool:
    """Return True when ``sensor_value <operator> threshold_value`` holds."""
    return _COMPARATORS[parse_operator(operator)](float(sensor_value), float(threshold_value))
