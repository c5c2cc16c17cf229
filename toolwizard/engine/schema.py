"""Pydantic models for tool declarations.

A tool is a JSON (or YAML) document describing a graph of steps. Each step
carries fields, visibility rules and an ordered list of actions to run when
the user advances. Keys are camelCase on the wire and snake_case here.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

GENERIC_ERROR_STEP = 'generic-error-step'


class WizardModel(BaseModel):
    """Base for every declaration model: camelCase aliases, unknown keys kept."""

    model_config = ConfigDict(extra='allow', alias_generator=to_camel, populate_by_name=True)


class StepType(str, Enum):
    FORM = 'form'
    PROMPT = 'prompt'
    GRID = 'grid'
    SUCCESS = 'success'
    ERROR = 'error'


class ActionType(str, Enum):
    CALL_API = 'callApi'
    GET_SHEET_INFO = 'getSheetInfo'
    STORE_LOCAL = 'storeLocal'
    WORKER = 'worker'
    NAVIGATION = 'navigation'


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class Condition(WizardModel):
    """General visibility condition: ``{key, operator, value}``."""

    key: str = Field(..., description="Dotted path looked up in the data bag")
    operator: str = Field('equals', description="equals, notEquals, exists, notExists, ...")
    value: Any = None


class ActionCondition(WizardModel):
    """Action gating condition: ``{when, equals}``."""

    when: str = Field(..., description="Dotted path looked up in the data bag")
    equals: Any = None


class StepTarget(WizardModel):
    go_to_step: str


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


class Option(WizardModel):
    value: Any
    label: str = ''

    @model_validator(mode='before')
    @classmethod
    def _from_scalar(cls, data: Any) -> Any:
        if isinstance(data, (dict, BaseModel)):
            return data
        return {'value': data, 'label': str(data)}


class Visibility(WizardModel):
    depends_on: str
    condition: str = 'answered'
    value: Any = None


class ConditionalOptions(WizardModel):
    depends_on: str
    condition: str = 'answered'
    value: Any = None
    options: Dict[str, List[Option]] = Field(default_factory=dict)


class OptionDependency(WizardModel):
    field_id: str
    options_map: Dict[str, List[Option]] = Field(default_factory=dict)


class ConditionalValues(WizardModel):
    depends_on: str
    condition: str = 'answered'
    value: Any = None
    values: Dict[str, Any] = Field(default_factory=dict)


class FieldSpec(WizardModel):
    """One input on a step."""

    id: str
    label: str = ''
    type: str = 'text'
    description: Optional[str] = None
    required: bool = False
    editable: Optional[bool] = None
    options: List[Option] = Field(default_factory=list)
    visibility: Optional[Visibility] = None
    display_condition: Optional[Condition] = None
    conditional_options: Optional[ConditionalOptions] = None
    depends_on: Optional[OptionDependency] = None
    conditional_values: Optional[ConditionalValues] = None
    reset: List[str] = Field(default_factory=list)
    source_data_key: Optional[str] = None
    source_data_path: Optional[str] = None

    @model_validator(mode='after')
    def _default_label(self) -> 'FieldSpec':
        if not self.label:
            self.label = self.id
        return self

    def option_source(self):
        """Return ``(driver_field_id, options_by_value)`` or None."""
        if self.conditional_options is not None:
            return self.conditional_options.depends_on, self.conditional_options.options
        if self.depends_on is not None:
            return self.depends_on.field_id, self.depends_on.options_map
        return None


# ---------------------------------------------------------------------------
# Grid
# ---------------------------------------------------------------------------


class GridColumn(WizardModel):
    key: str
    label: str = ''
    type: str = 'text'
    options: List[Any] = Field(default_factory=list)


class EditCapability(WizardModel):
    enabled: bool = False
    condition: Optional[ActionCondition] = None


class EditFeatures(WizardModel):
    add_row: Optional[EditCapability] = None
    delete_row: Optional[EditCapability] = None
    grid_text: Optional[EditCapability] = None


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class BaseAction(WizardModel):
    action_id: Optional[str] = None
    label: Optional[str] = None
    condition: Optional[ActionCondition] = None
    display_condition: Optional[Condition] = None
    store_response_as: Optional[str] = None
    store_data_as: Optional[str] = None

    @property
    def alias(self) -> Optional[str]:
        """Alias the result is stored under; storeResponseAs wins over storeDataAs."""
        return self.store_response_as or self.store_data_as


class RemoteAction(BaseAction):
    api_endpoint: Optional[str] = None
    method: str = 'POST'
    input_mapping: Dict[str, str] = Field(default_factory=dict)
    prompt: bool = False
    prompt_context: Optional[str] = None


class CallApiAction(RemoteAction):
    action: Literal['callApi']


class GetSheetInfoAction(RemoteAction):
    action: Literal['getSheetInfo']
    method: str = 'GET'
    identifier_field: str = 'sheetId'


class StoreLocalAction(BaseAction):
    action: Literal['storeLocal']
    input_mapping: Dict[str, str] = Field(default_factory=dict)
    data_to_store: Any = None


class WorkerAction(BaseAction):
    action: Literal['worker']
    action_id: str
    backend: Dict[str, Any] = Field(default_factory=dict)
    on_success: Optional[StepTarget] = None
    on_error: Optional[StepTarget] = None


class NavigationAction(BaseAction):
    action: Literal['navigation']
    on_success: Optional[StepTarget] = None
    go_to_step: Optional[str] = None

    @property
    def target(self) -> Optional[str]:
        if self.go_to_step:
            return self.go_to_step
        return self.on_success.go_to_step if self.on_success else None


ActionSpec = Annotated[
    Union[CallApiAction, GetSheetInfoAction, StoreLocalAction, WorkerAction, NavigationAction],
    Field(discriminator='action'),
]


def _normalise_actions(value: Any) -> List[Any]:
    """Accept a single action or a list; accept ``type`` as the action tag."""
    if value is None:
        return []
    if isinstance(value, dict):
        value = [value]
    actions = []
    for raw in value:
        if isinstance(raw, dict) and 'action' not in raw and 'type' in raw:
            raw = {**raw, 'action': raw['type']}
        actions.append(raw)
    return actions


# ---------------------------------------------------------------------------
# Steps and tools
# ---------------------------------------------------------------------------


class StepDefinition(WizardModel):
    """One node of the wizard graph."""

    id: str = Field(..., validation_alias=AliasChoices('id', 'stepId'))
    title: str = ''
    description: str = Field('', validation_alias=AliasChoices('description', 'content'))
    type: StepType = StepType.FORM
    fields: List[FieldSpec] = Field(default_factory=list)
    data_source: Optional[str] = None
    next_step_id: Optional[str] = None
    on_submit: List[ActionSpec] = Field(default_factory=list)
    actions: List[ActionSpec] = Field(default_factory=list)
    columns: List[GridColumn] = Field(default_factory=list)
    editable: bool = False
    edit_features: Optional[EditFeatures] = None

    @field_validator('on_submit', 'actions', mode='before')
    @classmethod
    def _coerce_actions(cls, value: Any) -> List[Any]:
        return _normalise_actions(value)

    @property
    def is_terminal(self) -> bool:
        return self.type in (StepType.SUCCESS, StepType.ERROR)

    def get_field(self, field_id: str) -> Optional[FieldSpec]:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    def get_action(self, action_id: str):
        for action in self.actions:
            if action.action_id == action_id:
                return action
        return None


class ToolDefinition(WizardModel):
    """A complete tool declaration."""

    id: str = ''
    name: str = ''
    description: Any = ''
    steps: List[StepDefinition] = Field(..., min_length=1)

    @model_validator(mode='after')
    def _check_graph(self) -> 'ToolDefinition':
        ids = [step.id for step in self.steps]
        duplicates = sorted({step_id for step_id in ids if ids.count(step_id) > 1})
        if duplicates:
            raise ValueError(f"Duplicate step ids: {', '.join(duplicates)}")

        known = set(ids) | {GENERIC_ERROR_STEP}
        for step in self.steps:
            for target in _declared_targets(step):
                if target not in known:
                    raise ValueError(f"Step '{step.id}' points at unknown step '{target}'")
        return self

    @property
    def first_step(self) -> StepDefinition:
        return self.steps[0]

    def get_step(self, step_id: Optional[str]) -> Optional[StepDefinition]:
        for step in self.steps:
            if step.id == step_id:
                return step
        if step_id == GENERIC_ERROR_STEP:
            return StepDefinition(
                id=GENERIC_ERROR_STEP,
                type=StepType.ERROR,
                title='Something went wrong',
                description='The tool could not finish. Start again or contact the tool owner.',
            )
        return None

    def successor(self, step: StepDefinition) -> Optional[StepDefinition]:
        """Resolve the step that follows ``step`` when no action redirects.

        ``nextStepId`` wins; otherwise the next step in document order, unless
        that step is an error sink. Terminal steps have no successor.
        """
        if step.is_terminal:
            return None
        if step.next_step_id:
            return self.get_step(step.next_step_id)
        index = self.steps.index(step)
        if index + 1 < len(self.steps):
            candidate = self.steps[index + 1]
            if candidate.type != StepType.ERROR:
                return candidate
        return None


def _declared_targets(step: StepDefinition) -> List[str]:
    targets = []
    if step.next_step_id:
        targets.append(step.next_step_id)
    for action in [*step.on_submit, *step.actions]:
        if isinstance(action, NavigationAction) and action.target:
            targets.append(action.target)
        if isinstance(action, WorkerAction):
            if action.on_success:
                targets.append(action.on_success.go_to_step)
            if action.on_error:
                targets.append(action.on_error.go_to_step)
    return targets
