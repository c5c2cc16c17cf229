"""Declarative predicates evaluated against a data bag.

Pure functions only: safe to call on every render.
"""

import logging
from typing import Any, Dict, Optional, Union

from .paths import MISSING, lookup
from .schema import ActionCondition, Condition

logger = logging.getLogger(__name__)

ConditionLike = Union[Condition, ActionCondition, Dict[str, Any], None]


def is_empty(value: Any) -> bool:
    """True for values a required field may not hold."""
    if value is MISSING or value is None:
        return True
    if isinstance(value, str) and value.strip() == '':
        return True
    if isinstance(value, (list, tuple, dict)) and len(value) == 0:
        return True
    return False


def option_value(value: Any) -> Any:
    """Unwrap ``{value, label}`` selections to their value."""
    if isinstance(value, dict) and 'value' in value:
        return value['value']
    return value


def as_text(value: Any) -> str:
    """String coercion matching what a text input would have produced."""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def values_equal(actual: Any, expected: Any) -> bool:
    if actual is MISSING:
        return False
    actual = option_value(actual)
    if actual is None or expected is None:
        return actual is expected
    if isinstance(actual, (str, bool)) or isinstance(expected, (str, bool)):
        return as_text(actual) == as_text(expected)
    return actual == expected


def _compare_numbers(actual: Any, expected: Any, less: bool) -> bool:
    try:
        left = float(option_value(actual))
        right = float(expected)
    except (TypeError, ValueError):
        return False
    return left < right if less else left > right


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return as_text(expected) in actual
    if isinstance(actual, (list, tuple)):
        return any(values_equal(item, expected) for item in actual)
    if isinstance(actual, dict):
        return as_text(expected) in actual
    return False


def apply_operator(operator: str, actual: Any, expected: Any = None) -> bool:
    """Apply one operator to an already looked-up value."""
    if operator == 'equals':
        return values_equal(actual, expected)
    if operator == 'notEquals':
        return not values_equal(actual, expected)
    if operator == 'exists':
        return actual is not MISSING and actual is not None
    if operator == 'notExists':
        return actual is MISSING or actual is None
    if operator == 'contains':
        return _contains(actual, expected)
    if operator == 'isLessThan':
        return _compare_numbers(actual, expected, less=True)
    if operator == 'isGreaterThan':
        return _compare_numbers(actual, expected, less=False)

    logger.warning("Unknown condition operator %r, treating as false", operator)
    return False


def evaluate(condition: ConditionLike, data_bag: Dict[str, Any]) -> bool:
    """Evaluate ``condition`` against ``data_bag``.

    An absent condition is open: the result is True. Both the general
    ``{key, operator, value}`` shape and the action gating ``{when, equals}``
    shape are accepted, as models or as plain dicts.

    Args:
        condition: Condition to evaluate, or None
        data_bag: Nested record the dotted key is looked up in

    Returns:
        Whether the condition holds
    """
    if condition is None:
        return True

    if isinstance(condition, dict):
        if 'when' in condition:
            condition = ActionCondition.model_validate(condition)
        else:
            condition = Condition.model_validate(condition)

    if isinstance(condition, ActionCondition):
        return values_equal(lookup(data_bag, condition.when), condition.equals)

    return apply_operator(condition.operator, lookup(data_bag, condition.key), condition.value)


def build_data_bag(
    form_data: Dict[str, Dict[str, Any]],
    response_data: Dict[str, Any],
    active_step_id: Optional[str],
) -> Dict[str, Any]:
    """Merge session state into one bag for condition lookups.

    Every step's answers keyed by step id, then every stored alias, then the
    active step's own fields at the top level.
    """
    bag: Dict[str, Any] = {}
    bag.update(form_data)
    bag.update(response_data)
    bag.update(form_data.get(active_step_id, {}))
    return bag
