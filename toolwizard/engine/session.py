"""Session state for one wizard run.

One explicit object owns everything a running tool accumulates; engine
components receive it by reference. Nothing here is module-global.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from .schema import Option, StepDefinition, ToolDefinition, WorkerAction


class JobStatus(str, Enum):
    PENDING = 'PENDING'
    COMPLETED = 'COMPLETED'
    FAILED = 'FAILED'

    @classmethod
    def from_raw(cls, raw: Any) -> 'JobStatus':
        """Map a backend status string; anything unrecognised is still pending."""
        text = str(raw or '').strip().upper()
        if text in ('COMPLETED', 'SUCCESS', 'SUCCEEDED'):
            return cls.COMPLETED
        if text in ('FAILED', 'ERROR'):
            return cls.FAILED
        return cls.PENDING


@dataclass
class Job:
    """One in-flight worker invocation."""

    action_id: str
    run_id: str
    step_id: str
    action: Optional[WorkerAction] = None
    status: JobStatus = JobStatus.PENDING
    error: Optional[str] = None


@dataclass
class StepMessage:
    level: str
    message: str


@dataclass
class WizardSession:
    """Authoritative state of one wizard session."""

    tool: Optional[ToolDefinition] = None
    current_step_id: Optional[str] = None
    form_data: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    response_data: Dict[str, Any] = field(default_factory=dict)
    step_history: List[str] = field(default_factory=list)
    validation_errors: Dict[str, str] = field(default_factory=dict)
    option_cache: Dict[str, Dict[str, List[Option]]] = field(default_factory=dict)
    issued_row_ids: Set[str] = field(default_factory=set)
    job: Optional[Job] = None
    run_id: Optional[str] = None
    error: Optional[str] = None
    load_error: Optional[str] = None
    message: Optional[StepMessage] = None
    loading: bool = False
    completed: bool = False

    def clear(self) -> None:
        """Return every piece of state to its empty lifecycle start."""
        self.tool = None
        self.restart()
        self.load_error = None

    def restart(self) -> None:
        """Clear run state but keep the loaded tool."""
        self.current_step_id = None
        self.form_data = {}
        self.response_data = {}
        self.step_history = []
        self.validation_errors = {}
        self.option_cache = {}
        self.issued_row_ids = set()
        self.job = None
        self.run_id = None
        self.error = None
        self.message = None
        self.loading = False
        self.completed = False

    @property
    def current_step(self) -> Optional[StepDefinition]:
        if self.tool is None:
            return None
        return self.tool.get_step(self.current_step_id)

    def step_values(self, step_id: str) -> Dict[str, Any]:
        return self.form_data.get(step_id, {})

    def clear_step_feedback(self) -> None:
        self.error = None
        self.message = None
        self.validation_errors = {}

    def navigate_to(self, step_id: str) -> None:
        self.current_step_id = step_id
        self.step_history.append(step_id)
        self.validation_errors = {}
