"""Field visibility, option dependencies and dependent-field resets."""

from collections import deque
from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from .conditions import as_text, evaluate, is_empty, option_value, values_equal
from .paths import MISSING
from .schema import FieldSpec, Option, StepDefinition


@dataclass(frozen=True)
class FieldView:
    """What the view needs to render one field."""

    field: FieldSpec
    value: Any
    options: List[Option]
    disabled: bool = False


class DependencyGraph:
    """Adjacency from a driver field to the fields that depend on it."""

    def __init__(self, edges: Dict[str, List[str]]):
        self.edges = edges

    @classmethod
    def from_fields(cls, fields: List[FieldSpec]) -> 'DependencyGraph':
        edges: Dict[str, List[str]] = {}

        def link(driver: str, dependent: str) -> None:
            targets = edges.setdefault(driver, [])
            if dependent not in targets and dependent != driver:
                targets.append(dependent)

        for field in fields:
            if field.visibility:
                link(field.visibility.depends_on, field.id)
            if field.display_condition:
                link(field.display_condition.key, field.id)
            source = field.option_source()
            if source:
                link(source[0], field.id)
            if field.conditional_values:
                link(field.conditional_values.depends_on, field.id)
            for dependent in field.reset:
                link(field.id, dependent)

        return cls(edges)

    def direct_dependents(self, field_id: str) -> List[str]:
        return list(self.edges.get(field_id, []))

    def dependents(self, field_id: str) -> List[str]:
        """Every field reachable from ``field_id``, breadth first.

        Cycles are cut by the visited set, and the changed field itself is
        never part of the result.
        """
        seen = {field_id}
        ordered: List[str] = []
        queue = deque(self.edges.get(field_id, []))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            ordered.append(current)
            queue.extend(self.edges.get(current, []))
        return ordered


class VisibilityResolver:
    """Decides which fields of one step are shown and with what options."""

    def __init__(self, step: StepDefinition):
        self.step = step
        self.graph = DependencyGraph.from_fields(step.fields)

    def is_visible(self, field: FieldSpec, values: Dict[str, Any], data_bag: Dict[str, Any]) -> bool:
        if field.visibility:
            driver = values.get(field.visibility.depends_on, MISSING)
            if field.visibility.condition == 'eq':
                if not values_equal(driver, field.visibility.value):
                    return False
            elif is_empty(driver):
                return False
        return evaluate(field.display_condition, data_bag)

    def options_for(
        self, field: FieldSpec, values: Dict[str, Any], option_cache: Dict[str, List[Option]]
    ) -> Tuple[List[Option], bool]:
        """Return ``(options, disabled)`` for ``field``.

        Fields with an option dependency take their options from the lookup
        table keyed on the driver's current value; no entry means no options
        and a disabled control.
        """
        source = field.option_source()
        if source is None:
            return list(field.options), False
        if field.id in option_cache:
            options = option_cache[field.id]
            return list(options), not options

        driver_id, table = source
        driver = option_value(values.get(driver_id))
        if is_empty(driver):
            return [], True
        options = table.get(as_text(driver), [])
        return list(options), not options

    def visible_fields(
        self,
        values: Dict[str, Any],
        data_bag: Dict[str, Any],
        option_cache: Dict[str, List[Option]],
    ) -> List[FieldView]:
        views = []
        for field in self.step.fields:
            if not self.is_visible(field, values, data_bag):
                continue
            options, disabled = self.options_for(field, values, option_cache)
            views.append(FieldView(field=field, value=values.get(field.id), options=options, disabled=disabled))
        return views

    def visible_actions(self, data_bag: Dict[str, Any]) -> list:
        return [action for action in self.step.actions if evaluate(action.display_condition, data_bag)]

    def missing_required(self, values: Dict[str, Any], data_bag: Dict[str, Any]) -> Dict[str, str]:
        """Required-field errors over visible fields only."""
        errors = {}
        for field in self.step.fields:
            if not field.required or not self.is_visible(field, values, data_bag):
                continue
            if is_empty(values.get(field.id, MISSING)):
                errors[field.id] = f"{field.label} is required."
        return errors

    def apply_change(
        self,
        values: Dict[str, Any],
        option_cache: Dict[str, List[Option]],
        field_id: str,
        value: Any,
    ) -> Tuple[Dict[str, Any], Dict[str, List[Option]]]:
        """Compute the step's values and option cache after one field edit.

        Every transitive dependent loses its value and cached options; direct
        dependents then get their options recomputed and any declared
        prefill applied. Re-entering the stored value leaves dependents alone.
        The caller swaps both results in as one update.
        """
        if field_id in values and values_equal(values[field_id], option_value(value)):
            return {**values, field_id: value}, dict(option_cache)

        new_values = dict(values)
        new_cache = dict(option_cache)
        new_values[field_id] = value

        for dependent in self.graph.dependents(field_id):
            new_values.pop(dependent, None)
            new_cache.pop(dependent, None)

        driver = option_value(value)
        for dependent_id in self.graph.direct_dependents(field_id):
            dependent = self.step.get_field(dependent_id)
            if dependent is None:
                continue

            source = dependent.option_source()
            if source and source[0] == field_id:
                options = [] if is_empty(driver) else source[1].get(as_text(driver), [])
                new_cache[dependent_id] = list(options)

            prefill = dependent.conditional_values
            if prefill and prefill.depends_on == field_id and not is_empty(driver):
                if prefill.condition == 'eq' and not values_equal(value, prefill.value):
                    continue
                key = as_text(driver)
                if key in prefill.values:
                    new_values[dependent_id] = prefill.values[key]

        return new_values, new_cache
