"""Core wizard engine - the state machine a view layer drives."""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .backend import ActionBackend, JobStatusReport
from .conditions import build_data_bag, is_empty
from .errors import ToolWizardError
from .grid import GridStore, seed_rows
from .loader import ToolLoader
from .orchestrator import ActionOrchestrator, SequenceStatus
from .paths import MISSING, lookup
from .poller import DEFAULT_POLL_INTERVAL, JobPoller
from .schema import GENERIC_ERROR_STEP, GridColumn, StepDefinition, StepType, ToolDefinition
from .session import Job, StepMessage, WizardSession
from .visibility import FieldView, VisibilityResolver

logger = logging.getLogger(__name__)

TRACKED_STEP_TYPES = (StepType.FORM, StepType.PROMPT, StepType.GRID)


class WizardStatus(str, Enum):
    IDLE = 'idle'
    LOADING = 'loading'
    READY = 'ready'
    ERROR = 'error'
    COMPLETED = 'completed'


@dataclass(frozen=True)
class ProgressItem:
    step_id: str
    title: str
    state: str  # completed, active or upcoming


@dataclass(frozen=True)
class GridView:
    columns: List[GridColumn]
    rows: List[Dict[str, Any]]
    capabilities: Dict[str, bool]


@dataclass(frozen=True)
class WizardView:
    """Read-only snapshot of everything a view renders."""

    status: WizardStatus
    step: Optional[StepDefinition]
    fields: List[FieldView] = field(default_factory=list)
    actions: list = field(default_factory=list)
    grid: Optional[GridView] = None
    loading: bool = False
    error: Optional[str] = None
    load_error: Optional[str] = None
    validation_errors: Dict[str, str] = field(default_factory=dict)
    message: Optional[StepMessage] = None
    history: List[str] = field(default_factory=list)
    progress: List[ProgressItem] = field(default_factory=list)
    can_go_back: bool = False
    can_advance: bool = False


class WizardEngine:
    """
    Interprets a tool declaration at runtime.

    Key responsibilities:
    - Own the session (answers, stored responses, history, errors)
    - Validate visible required fields before any action runs
    - Hand submit sequences to the orchestrator
    - Tie the job poller to the session lifecycle

    Every public operation converts failures into session state; callers
    never need to catch.
    """

    def __init__(
        self,
        backend: ActionBackend,
        loader: Optional[ToolLoader] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the wizard engine.

        Args:
            backend: ActionBackend implementation for remote side effects
            loader: Local catalog; when None, tools are fetched from the backend
            poll_interval: Seconds between job status polls
            sleep: Sleep function used while waiting on jobs
        """
        self.backend = backend
        self.loader = loader
        self.session = WizardSession()
        self.orchestrator = ActionOrchestrator(self.session, backend)
        self.poller = JobPoller(
            backend,
            interval=poll_interval,
            sleep=sleep,
            on_completed=self._on_job_completed,
            on_failed=self._on_job_failed,
            on_error=self._on_poll_error,
        )
        self._resolvers: Dict[str, VisibilityResolver] = {}

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def tool(self) -> Optional[ToolDefinition]:
        return self.session.tool

    @property
    def current_step(self) -> Optional[StepDefinition]:
        return self.session.current_step

    @property
    def status(self) -> WizardStatus:
        session = self.session
        if session.loading:
            return WizardStatus.LOADING
        if session.completed:
            return WizardStatus.COMPLETED
        if session.load_error:
            return WizardStatus.ERROR
        if session.current_step is None:
            return WizardStatus.IDLE
        if session.error:
            return WizardStatus.ERROR
        return WizardStatus.READY

    def _resolver(self, step: StepDefinition) -> VisibilityResolver:
        if step.id not in self._resolvers:
            self._resolvers[step.id] = VisibilityResolver(step)
        return self._resolvers[step.id]

    def _data_bag(self, step_id: Optional[str]) -> Dict[str, Any]:
        return build_data_bag(self.session.form_data, self.session.response_data, step_id)

    def _is_current(self, step_id: str) -> bool:
        step = self.current_step
        return step is not None and step.id == step_id

    def _accepts_input(self, step_id: str) -> bool:
        return self._is_current(step_id) and not self.session.loading and not self.session.completed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load_tool(self, tool_id: str) -> bool:
        """Reset the session, fetch a tool and start at its first step.

        Returns:
            True if the tool loaded; otherwise ``session.load_error`` is set
            and there is no current step
        """
        self.reset_tool()
        self.session.loading = True
        try:
            if self.loader is not None:
                tool = self.loader.load_tool(tool_id)
            else:
                tool = ToolLoader.parse_tool(self.backend.get_tool_definition(tool_id), tool_id)
        except ToolWizardError as e:
            logger.error("Failed to load tool %s: %s", tool_id, e.message)
            self.session.load_error = f"Failed to load tool definition: {e.message}"
            return False
        except Exception as e:
            logger.exception("Unexpected failure loading tool %s", tool_id)
            self.session.load_error = f"Failed to load tool definition: {e}"
            return False
        finally:
            self.session.loading = False

        self.session.tool = tool
        self._resolvers = {step.id: VisibilityResolver(step) for step in tool.steps}
        logger.info("Loaded tool %s with %d step(s)", tool.id, len(tool.steps))
        self._enter(tool.first_step.id)
        return True

    def reset_tool(self) -> None:
        """Clear every piece of session state and stop any poll."""
        self.poller.cancel()
        self.session.clear()
        self._resolvers = {}

    def dismiss_completion(self) -> None:
        """Start the loaded tool over from its first step with empty answers."""
        self.poller.cancel()
        tool = self.session.tool
        self.session.restart()
        if tool is not None:
            self._enter(tool.first_step.id)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _enter(self, step_id: str) -> None:
        self.session.navigate_to(step_id)
        step = self.current_step
        if step is None:
            logger.warning("Navigated to undeclared step %s", step_id)
            return
        logger.info("Entered step %s", step_id)
        self._prepare_step(step)

    def _prepare_step(self, step: StepDefinition) -> None:
        """Seed a step from stored responses the first time it is shown."""
        session = self.session
        values = session.step_values(step.id)

        if step.type == StepType.GRID and step.data_source and 'rows' not in values:
            source = session.response_data.get(step.data_source)
            rows = source.get('rows') if isinstance(source, dict) else source
            if isinstance(rows, list):
                seed_rows(session, step, rows)

        for spec in step.fields:
            if not spec.source_data_key or not is_empty(session.step_values(step.id).get(spec.id)):
                continue
            source = session.response_data.get(spec.source_data_key, MISSING)
            if source is MISSING:
                continue
            value = lookup(source, spec.source_data_path) if spec.source_data_path else source
            if value is not MISSING:
                session.form_data[step.id] = {**session.step_values(step.id), spec.id: value}

    def _advance_from(self, step: StepDefinition, target: Optional[str]) -> None:
        if target:
            self._enter(target)
            return
        following = self.tool.successor(step)
        if following is None:
            logger.info("Tool %s completed at step %s", self.tool.id, step.id)
            self.session.completed = True
            return
        self._enter(following.id)

    def go_back(self) -> bool:
        """Return to the previous step; answers are kept for resubmission."""
        session = self.session
        if session.loading or session.completed or len(session.step_history) <= 1:
            return False
        session.step_history.pop()
        session.current_step_id = session.step_history[-1]
        session.clear_step_feedback()
        logger.info("Went back to step %s", session.current_step_id)
        return True

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def update_field(self, step_id: str, field_id: str, value: Any) -> bool:
        """Field-change callback; resets every dependent field in one update."""
        if not self._accepts_input(step_id):
            return False
        session = self.session
        session.clear_step_feedback()
        resolver = self._resolver(self.current_step)
        values, cache = resolver.apply_change(
            session.step_values(step_id), session.option_cache.get(step_id, {}), field_id, value
        )
        session.form_data[step_id] = values
        session.option_cache[step_id] = cache
        return True

    def merge_form_data(self, step_id: str, data: Dict[str, Any]) -> None:
        self.session.form_data[step_id] = {**self.session.step_values(step_id), **data}

    def grid_store(self) -> Optional[GridStore]:
        step = self.current_step
        if step is None or step.type != StepType.GRID:
            return None
        return GridStore(self.session, step)

    def update_cell(self, step_id: str, row_id: str, column: str, value: Any) -> bool:
        if not self._accepts_input(step_id) or self.grid_store() is None:
            return False
        self.session.clear_step_feedback()
        return self.grid_store().update_cell(row_id, column, value)

    def add_row(self, step_id: str) -> Optional[Dict[str, Any]]:
        if not self._accepts_input(step_id) or self.grid_store() is None:
            return None
        self.session.clear_step_feedback()
        return self.grid_store().add_row()

    def delete_row(self, step_id: str, row_id: str) -> bool:
        if not self._accepts_input(step_id) or self.grid_store() is None:
            return False
        self.session.clear_step_feedback()
        return self.grid_store().delete_row(row_id)

    # ------------------------------------------------------------------
    # Advancing
    # ------------------------------------------------------------------

    def advance_step(self, step_id: str, action_id: Optional[str] = None) -> bool:
        """Validate the current step and run its submit sequence.

        Args:
            step_id: Step the caller believes is current; anything else is ignored
            action_id: Run only this button action from ``step.actions``
                instead of the ``onSubmit`` sequence

        Returns:
            True if the sequence started successfully (navigation, completion
            or a pending job); False if refused, invalid or aborted
        """
        step = self.current_step
        if step is None or step.id != step_id:
            logger.debug("Ignoring advance for stale step %s", step_id)
            return False
        if self.session.loading or self.session.job is not None or self.session.completed:
            logger.debug("Ignoring advance for %s while busy", step_id)
            return False

        session = self.session
        session.clear_step_feedback()
        resolver = self._resolver(step)
        bag = self._data_bag(step.id)

        errors = resolver.missing_required(session.step_values(step.id), bag)
        if errors:
            session.validation_errors = errors
            logger.info("Validation failed on step %s: %s", step.id, sorted(errors))
            return False

        if action_id is not None:
            action = step.get_action(action_id)
            if action is None or action not in resolver.visible_actions(bag):
                session.error = f"Action '{action_id}' is not available on this step."
                return False
            actions = [action]
        else:
            actions = list(step.on_submit)

        session.loading = True
        result = self.orchestrator.run(step, actions)

        if result.status == SequenceStatus.ABORTED:
            session.loading = False
            session.error = result.error
            return False

        if result.status == SequenceStatus.PENDING_JOB:
            session.job = result.job
            self.poller.start(result.job)
            return True

        session.loading = False
        self._advance_from(step, result.next_step_id)
        return True

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def poll_job(self) -> Optional[JobStatusReport]:
        """One poll; the timer callback for event-loop drivers."""
        return self.poller.tick()

    def wait_for_job(self, max_polls: Optional[int] = None) -> Optional[JobStatusReport]:
        return self.poller.wait(max_polls)

    def _merge_server_form_data(self, job: Job, data: Dict[str, Any]) -> None:
        for key, value in data.items():
            declared = self.tool.get_step(key) if self.tool else None
            if declared is not None and key != GENERIC_ERROR_STEP and isinstance(value, dict):
                self.merge_form_data(key, value)
            else:
                self.merge_form_data(job.step_id, {key: value})

    def _on_job_completed(self, job: Job, report: JobStatusReport) -> None:
        session = self.session
        session.job = None
        session.loading = False
        if report.form_data:
            self._merge_server_form_data(job, report.form_data)
        if report.run_data:
            session.response_data.update(report.run_data)

        step = self.tool.get_step(job.step_id)
        target = None
        if report.current_step_id and report.current_step_id != job.step_id and self.tool.get_step(report.current_step_id):
            target = report.current_step_id
        elif job.action and job.action.on_success:
            target = job.action.on_success.go_to_step
        self._advance_from(step, target)

    def _on_job_failed(self, job: Job, report: JobStatusReport) -> None:
        session = self.session
        session.job = None
        session.loading = False
        session.error = report.error or "An unknown job error occurred."
        target = GENERIC_ERROR_STEP
        if job.action and job.action.on_error:
            target = job.action.on_error.go_to_step
        self._enter(target)

    def _on_poll_error(self, job: Job, error: Exception) -> None:
        session = self.session
        session.job = None
        session.loading = False
        session.error = "Failed to get run status."

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    def progress(self) -> List[ProgressItem]:
        if self.tool is None:
            return []
        current = self.session.current_step_id
        items = []
        for step in self.tool.steps:
            if step.type not in TRACKED_STEP_TYPES:
                continue
            if step.id == current:
                state = 'active'
            elif step.id in self.session.step_history:
                state = 'completed'
            else:
                state = 'upcoming'
            items.append(ProgressItem(step_id=step.id, title=step.title, state=state))
        return items

    def view(self) -> WizardView:
        session = self.session
        step = self.current_step
        fields: List[FieldView] = []
        actions: list = []
        grid = None

        if step is not None:
            resolver = self._resolver(step)
            bag = self._data_bag(step.id)
            fields = resolver.visible_fields(
                session.step_values(step.id), bag, session.option_cache.get(step.id, {})
            )
            actions = resolver.visible_actions(bag)
            if step.type == StepType.GRID:
                store = GridStore(session, step)
                grid = GridView(columns=store.columns, rows=store.rows, capabilities=store.capabilities())

        busy = session.loading or session.job is not None
        return WizardView(
            status=self.status,
            step=step,
            fields=fields,
            actions=actions,
            grid=grid,
            loading=busy,
            error=session.error,
            load_error=session.load_error,
            validation_errors=dict(session.validation_errors),
            message=session.message,
            history=list(session.step_history),
            progress=self.progress(),
            can_go_back=not busy and not session.completed and len(session.step_history) > 1,
            can_advance=step is not None and not busy and not session.completed,
        )
