"""Dotted-path addressing into session state.

``stepId.fieldId`` reads a field captured on another step, ``alias.key``
reads a stored response, a bare ``fieldId`` reads the active step.
"""

from typing import Any, Dict, NamedTuple, Optional


class _Missing:
    """Marker for a path that does not resolve, distinct from an explicit None."""

    def __repr__(self) -> str:
        return 'MISSING'

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


def lookup(data: Any, dotted: str) -> Any:
    """Traverse nested records along ``dotted``.

    Returns:
        The value found, or ``MISSING`` when any intermediate key is absent.
    """
    current = data
    for part in dotted.split('.'):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return MISSING
    return current


class FieldPath(NamedTuple):
    """A parsed path: ``scope`` is a step id or alias, None for the active step."""

    scope: Optional[str]
    key: str

    @classmethod
    def parse(cls, raw: str) -> 'FieldPath':
        raw = raw.strip()
        if '.' in raw:
            scope, key = raw.split('.', 1)
            return cls(scope, key)
        return cls(None, raw)

    def __str__(self) -> str:
        return f'{self.scope}.{self.key}' if self.scope else self.key


def resolve(
    path: FieldPath,
    form_data: Dict[str, Dict[str, Any]],
    response_data: Dict[str, Any],
    active_step_id: Optional[str],
    step_ids=(),
) -> Any:
    """Resolve ``path`` against FormData and ResponseData.

    Args:
        path: Parsed path
        form_data: stepId -> {fieldId: value}
        response_data: alias -> stored result
        active_step_id: Step used for bare paths
        step_ids: Declared step ids, so a step with no answers yet still
            counts as a FormData scope

    Returns:
        The value, or ``MISSING``
    """
    if path.scope is None:
        return lookup(form_data.get(active_step_id, {}), path.key)

    if path.scope in form_data or path.scope in step_ids:
        found = lookup(form_data.get(path.scope, {}), path.key)
        if found is not MISSING or path.scope not in response_data:
            return found

    if path.scope in response_data:
        return lookup(response_data[path.scope], path.key)

    # A dotted field id on the active step, e.g. "address.city"
    return lookup(form_data.get(active_step_id, {}), str(path))
