"""Per-step tabular data with capability-gated edits.

Rows live in ``form_data[step_id]['rows']`` so later steps can map them into
request bodies like any other answer.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from .conditions import build_data_bag, evaluate
from .schema import EditCapability, GridColumn, StepDefinition
from .session import WizardSession

logger = logging.getLogger(__name__)

CAPABILITIES = ('add_row', 'delete_row', 'grid_text')


def default_cell(column: GridColumn) -> Any:
    if column.type == 'checkbox':
        return False
    if column.options:
        first = column.options[0]
        return first.get('value', '') if isinstance(first, dict) else first
    return ''


def seed_rows(session: WizardSession, step: StepDefinition, rows: List[Dict[str, Any]]) -> None:
    """Install ``rows`` as the grid data of ``step``, giving each row an id."""
    seeded = []
    taken = set()
    for row in rows or []:
        row = dict(row)
        if row.get('id') in (None, '') or str(row['id']) in taken:
            row['id'] = _new_row_id(session, seeded)
        row['id'] = str(row['id'])
        taken.add(row['id'])
        session.issued_row_ids.add(row['id'])
        seeded.append(row)
    session.form_data[step.id] = {**session.step_values(step.id), 'rows': seeded}


def _new_row_id(session: WizardSession, rows: List[Dict[str, Any]]) -> str:
    taken = {str(row.get('id')) for row in rows}
    while True:
        candidate = uuid.uuid4().hex
        if candidate not in session.issued_row_ids and candidate not in taken:
            return candidate


class GridStore:
    """Edit operations for the grid of one step.

    A disabled capability turns its mutation into a no-op. The methods return
    whether anything changed so callers can tell a refused edit apart.
    """

    def __init__(self, session: WizardSession, step: StepDefinition):
        self.session = session
        self.step = step

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return list(self.session.step_values(self.step.id).get('rows', []))

    @property
    def columns(self) -> List[GridColumn]:
        if self.step.columns:
            return list(self.step.columns)
        source = self.session.response_data.get(self.step.data_source) if self.step.data_source else None
        if isinstance(source, dict) and isinstance(source.get('schema'), list):
            return [GridColumn.model_validate(column) for column in source['schema']]
        return []

    def _capability(self, name: str) -> Optional[EditCapability]:
        if self.step.edit_features is None:
            return None
        return getattr(self.step.edit_features, name)

    def is_enabled(self, name: str) -> bool:
        capability = self._capability(name)
        if capability is None:
            return self.step.editable
        if not capability.enabled:
            return False
        bag = build_data_bag(self.session.form_data, self.session.response_data, self.step.id)
        return evaluate(capability.condition, bag)

    def capabilities(self) -> Dict[str, bool]:
        return {name: self.is_enabled(name) for name in CAPABILITIES}

    def _write(self, rows: List[Dict[str, Any]]) -> None:
        self.session.form_data[self.step.id] = {**self.session.step_values(self.step.id), 'rows': rows}

    def update_cell(self, row_id: str, column: str, value: Any) -> bool:
        if not self.is_enabled('grid_text'):
            logger.debug("Cell edit refused on %s: gridText disabled", self.step.id)
            return False
        known = [col.key for col in self.columns]
        if column == 'id' or (known and column not in known):
            logger.debug("Cell edit refused on %s: unknown column %r", self.step.id, column)
            return False

        changed = False
        rows = []
        for row in self.rows:
            if row.get('id') == row_id:
                row = {**row, column: value}
                changed = True
            rows.append(row)
        if changed:
            self._write(rows)
        return changed

    def add_row(self) -> Optional[Dict[str, Any]]:
        if not self.is_enabled('add_row'):
            logger.debug("Add row refused on %s: addRow disabled", self.step.id)
            return None
        rows = self.rows
        row: Dict[str, Any] = {'id': _new_row_id(self.session, rows)}
        for column in self.columns:
            if column.key != 'id':
                row[column.key] = default_cell(column)
        self.session.issued_row_ids.add(row['id'])
        self._write(rows + [row])
        return row

    def delete_row(self, row_id: str) -> bool:
        if not self.is_enabled('delete_row'):
            logger.debug("Delete row refused on %s: deleteRow disabled", self.step.id)
            return False
        rows = self.rows
        remaining = [row for row in rows if row.get('id') != row_id]
        if len(remaining) == len(rows):
            return False
        self._write(remaining)
        return True
