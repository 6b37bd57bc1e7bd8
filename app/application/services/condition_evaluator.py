"""Evaluates FilterConditions against run context and trigger data.

Type mismatches evaluate to False; evaluation never raises.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from app.domain.entities.workflow import FilterCondition
from app.domain.enums import ConditionOperator, LogicOperator
from app.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()


def _lookup(source: Any, parts: list[str]) -> Any:
    current = source
    for part in parts:
        if isinstance(current, Mapping):
            if part not in current:
                return _MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return _MISSING
            current = current[index]
        else:
            return _MISSING
    return current


def resolve_field(
    path: str,
    context: Mapping[str, Any] | None,
    trigger_data: Mapping[str, Any] | None = None,
) -> Any:
    """Dotted lookup in the run context, then in trigger_data; None when absent.

    `item.*` is an alias for the trigger payload.
    """
    if not path:
        return None
    parts = path.split(".")
    if context is not None:
        value = _lookup(context, parts)
        if value is not _MISSING:
            return value
    if trigger_data is not None:
        if parts[0] in ("item", "trigger") and len(parts) > 1:
            value = _lookup(trigger_data, parts[1:])
            if value is not _MISSING:
                return value
        value = _lookup(trigger_data, parts)
        if value is not _MISSING:
            return value
    return None


def _to_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _contains(haystack: Any, needle: Any) -> bool:
    if haystack is None:
        return False
    if isinstance(haystack, str):
        return str(needle) in haystack
    if isinstance(haystack, Mapping):
        return needle in haystack
    if isinstance(haystack, Iterable):
        return needle in list(haystack)
    return False


def _member_of(value: Any, options: Any) -> bool | None:
    if isinstance(options, (list, tuple, set)):
        return value in options
    return None


def evaluate_condition(
    condition: FilterCondition,
    context: Mapping[str, Any] | None,
    trigger_data: Mapping[str, Any] | None = None,
) -> bool:
    """Evaluate one condition; unknown operators and type mismatches are False."""
    actual = resolve_field(condition.field, context, trigger_data)
    expected = condition.value
    try:
        match condition.operator:
            case ConditionOperator.EQUALS.value:
                return actual == expected
            case ConditionOperator.NOT_EQUALS.value:
                return actual != expected
            case ConditionOperator.CONTAINS.value:
                return _contains(actual, expected)
            case ConditionOperator.NOT_CONTAINS.value:
                return actual is not None and not _contains(actual, expected)
            case ConditionOperator.GREATER_THAN.value | ConditionOperator.LESS_THAN.value:
                left, right = _to_number(actual), _to_number(expected)
                if left is None or right is None:
                    return False
                if condition.operator == ConditionOperator.GREATER_THAN.value:
                    return left > right
                return left < right
            case ConditionOperator.IN.value:
                return bool(_member_of(actual, expected))
            case ConditionOperator.NOT_IN.value:
                result = _member_of(actual, expected)
                return result is False
            case ConditionOperator.IS_EMPTY.value:
                return _is_empty(actual)
            case ConditionOperator.IS_NOT_EMPTY.value:
                return not _is_empty(actual)
    except TypeError:
        logger.debug("Condition on %s raised a type mismatch; treating as false", condition.field)
        return False
    logger.warning("Unknown condition operator %s on field %s", condition.operator, condition.field)
    return False


def evaluate_conditions(
    conditions: list[FilterCondition],
    logic_operator: str,
    context: Mapping[str, Any] | None,
    trigger_data: Mapping[str, Any] | None = None,
) -> bool:
    """Combine in order with AND/OR short-circuit; an empty list is True."""
    if not conditions:
        return True
    if str(logic_operator).upper() == LogicOperator.OR.value:
        return any(evaluate_condition(c, context, trigger_data) for c in conditions)
    return all(evaluate_condition(c, context, trigger_data) for c in conditions)
