"""Tests for dotted paths and condition evaluation."""

import pytest
from toolwizard.engine.conditions import (
    apply_operator,
    build_data_bag,
    evaluate,
    is_empty,
    values_equal,
)
from toolwizard.engine.paths import MISSING, FieldPath, lookup, resolve
from toolwizard.engine.schema import ActionCondition, Condition


@pytest.fixture
def form_data():
    return {
        'getSheetId': {'sheetId': 'abc', 'mode': 'update'},
        'confirm': {'rows': [{'id': '1', 'name': 'first'}]},
    }


@pytest.fixture
def response_data():
    return {'sheetInfo': {'title': 'Budget', 'schema': [{'key': 'name'}]}}


def test_lookup_traverses_dicts_and_lists():
    """lookup walks nested records and list indices."""
    data = {'a': {'b': [{'c': 1}]}}

    assert lookup(data, 'a.b.0.c') == 1
    assert lookup(data, 'a.x') is MISSING
    assert lookup(data, 'a.b.5') is MISSING


def test_field_path_parse():
    """Only the first dot separates scope from key."""
    assert FieldPath.parse('sheetId') == FieldPath(None, 'sheetId')
    assert FieldPath.parse('step.address.city') == FieldPath('step', 'address.city')
    assert str(FieldPath.parse('step.field')) == 'step.field'


def test_resolve_bare_path_reads_active_step(form_data, response_data):
    """A path with no scope reads the active step's answers."""
    value = resolve(FieldPath.parse('sheetId'), form_data, response_data, 'getSheetId')

    assert value == 'abc'


def test_resolve_step_and_alias_scopes(form_data, response_data):
    """stepId.field reads FormData; alias.key reads ResponseData."""
    assert resolve(FieldPath.parse('getSheetId.mode'), form_data, response_data, 'confirm') == 'update'
    assert resolve(FieldPath.parse('sheetInfo.title'), form_data, response_data, 'confirm') == 'Budget'
    assert resolve(FieldPath.parse('nothing.here'), form_data, response_data, 'confirm') is MISSING


def test_resolve_unanswered_declared_step(form_data, response_data):
    """A declared step with no answers yet resolves to MISSING, not an alias."""
    value = resolve(FieldPath.parse('later.x'), form_data, response_data, 'confirm', step_ids=['later'])

    assert value is MISSING


def test_is_empty():
    """Blank strings, None, MISSING and empty collections count as empty."""
    for value in (MISSING, None, '', '   ', [], {}):
        assert is_empty(value)
    for value in (0, False, 'x', ['a']):
        assert not is_empty(value)


def test_values_equal_coerces_strings():
    """String comparison coerces the other side like a form would."""
    assert values_equal(1, '1')
    assert values_equal(True, 'true')
    assert values_equal({'value': 'a', 'label': 'A'}, 'a')
    assert not values_equal(MISSING, None)
    assert values_equal(None, None)
    assert not values_equal(None, 'None')


def test_values_equal_booleans_compare_as_text():
    """A boolean never equals a number: true and 1 differ as text."""
    assert not values_equal(1, True)
    assert not values_equal(True, 1)
    assert not values_equal(0, False)
    assert values_equal(False, False)
    assert values_equal('false', False)


@pytest.mark.parametrize('operator,actual,expected,result', [
    ('equals', 'a', 'a', True),
    ('equals', MISSING, 'a', False),
    ('notEquals', 'a', 'b', True),
    ('notEquals', MISSING, 'a', True),
    ('exists', 'a', None, True),
    ('exists', MISSING, None, False),
    ('notExists', MISSING, None, True),
    ('notExists', None, None, True),
    ('contains', 'budget-2024', '2024', True),
    ('contains', ['a', 'b'], 'b', True),
    ('isLessThan', 3, 5, True),
    ('isGreaterThan', '7', 5, True),
    ('isGreaterThan', 'x', 5, False),
])
def test_apply_operator(operator, actual, expected, result):
    """Each operator evaluates against the looked-up value."""
    assert apply_operator(operator, actual, expected) is result


def test_unknown_operator_is_false(caplog):
    """Unknown operators never open a condition and are logged."""
    assert apply_operator('matches', 'a', 'a') is False
    assert 'Unknown condition operator' in caplog.text


def test_evaluate_absent_condition_is_true():
    """No condition means the gated thing is shown or run."""
    assert evaluate(None, {}) is True


def test_evaluate_accepts_both_shapes():
    """{key, operator, value} and {when, equals} are both understood."""
    bag = {'getSheetId': {'mode': 'update'}, 'mode': 'update'}

    assert evaluate(Condition(key='getSheetId.mode', value='update'), bag)
    assert evaluate({'key': 'mode', 'operator': 'notEquals', 'value': 'append'}, bag)
    assert evaluate(ActionCondition(when='mode', equals='update'), bag)
    assert not evaluate({'when': 'getSheetId.mode', 'equals': 'append'}, bag)


def test_data_bag_layers_active_step_last(form_data, response_data):
    """Active step fields sit at the top level and win over aliases."""
    response_data['sheetId'] = 'from-alias'

    bag = build_data_bag(form_data, response_data, 'getSheetId')

    assert bag['sheetId'] == 'abc'
    assert bag['getSheetId']['mode'] == 'update'
    assert bag['sheetInfo']['title'] == 'Budget'
    assert bag['confirm']['rows'][0]['name'] == 'first'
