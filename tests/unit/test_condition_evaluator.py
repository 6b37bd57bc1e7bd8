"""Condition evaluator unit tests."""

import pytest

from app.application.services.condition_evaluator import (
    evaluate_condition,
    evaluate_conditions,
    resolve_field,
)
from app.domain.entities.workflow import FilterCondition

CONTEXT = {
    "trigger": {"priority": "high", "amount": 120, "tags": ["vip", "eu"]},
    "variables": {"owner": {"name": "ana"}, "count": 0, "flag": False},
    "nodes": {},
}


def _cond(field: str, operator: str, value=None) -> FilterCondition:
    return FilterCondition(field=field, operator=operator, value=value)


def test_resolve_field_walks_dotted_paths() -> None:
    assert resolve_field("variables.owner.name", CONTEXT) == "ana"
    assert resolve_field("trigger.tags.1", CONTEXT) == "eu"
    assert resolve_field("variables.missing", CONTEXT) is None


def test_resolve_field_falls_back_to_trigger_data() -> None:
    trigger_data = {"ticket": {"status": "open"}}
    assert resolve_field("ticket.status", None, trigger_data) == "open"
    assert resolve_field("item.ticket.status", None, trigger_data) == "open"


@pytest.mark.parametrize(
    ("condition", "expected"),
    [
        (_cond("trigger.priority", "equals", "high"), True),
        (_cond("trigger.priority", "not-equals", "high"), False),
        (_cond("trigger.priority", "contains", "ig"), True),
        (_cond("trigger.tags", "contains", "vip"), True),
        (_cond("trigger.tags", "not-contains", "us"), True),
        (_cond("trigger.amount", "greater-than", 100), True),
        (_cond("trigger.amount", "less-than", "100"), False),
        (_cond("trigger.priority", "in", ["low", "high"]), True),
        (_cond("trigger.priority", "not-in", ["low"]), True),
        (_cond("variables.missing", "is-empty"), True),
        (_cond("trigger.tags", "is-not-empty"), True),
    ],
)
def test_operators(condition: FilterCondition, expected: bool) -> None:
    assert evaluate_condition(condition, CONTEXT) is expected


def test_zero_and_false_are_not_empty() -> None:
    assert evaluate_condition(_cond("variables.count", "is-empty"), CONTEXT) is False
    assert evaluate_condition(_cond("variables.flag", "is-empty"), CONTEXT) is False


def test_type_mismatch_is_false() -> None:
    assert evaluate_condition(_cond("trigger.priority", "greater-than", 3), CONTEXT) is False
    assert evaluate_condition(_cond("trigger.priority", "in", "high"), CONTEXT) is False
    assert evaluate_condition(_cond("trigger.priority", "not-in", "high"), CONTEXT) is False


def test_unknown_operator_is_false() -> None:
    assert evaluate_condition(_cond("trigger.priority", "matches", "h.*"), CONTEXT) is False


def test_logic_operators() -> None:
    true = _cond("trigger.priority", "equals", "high")
    false = _cond("trigger.priority", "equals", "low")
    assert evaluate_conditions([true, false], "AND", CONTEXT) is False
    assert evaluate_conditions([true, false], "or", CONTEXT) is True
    assert evaluate_conditions([], "AND", CONTEXT) is True
