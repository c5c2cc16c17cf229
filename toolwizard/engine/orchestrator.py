"""Action orchestrator - runs a step's ordered action list.

Each action is gated by its optional condition (a false condition skips it),
then dispatched on its type. The first failure aborts the sequence; nothing
is retried.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from .backend import ActionBackend
from .conditions import build_data_bag, evaluate, is_empty
from .errors import ConfigurationError, JobAlreadyActiveError, ToolWizardError
from .grid import seed_rows
from .paths import MISSING, FieldPath, resolve
from .schema import (
    BaseAction,
    CallApiAction,
    GetSheetInfoAction,
    NavigationAction,
    RemoteAction,
    StepDefinition,
    StepType,
    StoreLocalAction,
    WorkerAction,
)
from .session import Job, StepMessage, WizardSession

logger = logging.getLogger(__name__)


class SequenceStatus(str, Enum):
    COMPLETED = 'completed'
    ABORTED = 'aborted'
    PENDING_JOB = 'pending_job'


@dataclass
class SequenceResult:
    status: SequenceStatus
    next_step_id: Optional[str] = None
    error: Optional[str] = None
    job: Optional[Job] = None
    executed: int = 0
    skipped: int = 0


class ActionOrchestrator:
    """Executes ActionSpecs against one session through one backend."""

    def __init__(self, session: WizardSession, backend: ActionBackend):
        self.session = session
        self.backend = backend

    def run(self, step: StepDefinition, actions: List[BaseAction]) -> SequenceResult:
        """Run ``actions`` in order for ``step``.

        Args:
            step: Step the actions belong to
            actions: Ordered ActionSpecs

        Returns:
            SequenceResult; ``next_step_id`` is set only when a navigation
            action chose the destination
        """
        executed = skipped = 0
        target: Optional[str] = None

        for index, action in enumerate(actions):
            bag = build_data_bag(self.session.form_data, self.session.response_data, step.id)
            if not evaluate(action.condition, bag):
                logger.info("Skipping %s on step %s: condition not met", action.action, step.id)
                skipped += 1
                continue

            logger.info("Running %s on step %s", action.action, step.id)
            try:
                if isinstance(action, (CallApiAction, GetSheetInfoAction)):
                    self._call_remote(step, action)
                elif isinstance(action, StoreLocalAction):
                    self._store_local(step, action)
                elif isinstance(action, NavigationAction):
                    target = self._navigate(step, action)
                elif isinstance(action, WorkerAction):
                    job = self._dispatch_worker(step, action)
                    leftover = len(actions) - index - 1
                    if leftover:
                        logger.warning(
                            "%d action(s) after worker %s on step %s were not run",
                            leftover, action.action_id, step.id,
                        )
                    return SequenceResult(
                        SequenceStatus.PENDING_JOB, job=job, executed=executed + 1, skipped=skipped
                    )
                else:
                    raise ConfigurationError(f"Unsupported action type: {action.action}")
            except ToolWizardError as e:
                logger.error("Action %s on step %s failed: %s", action.action, step.id, e.message)
                return SequenceResult(SequenceStatus.ABORTED, error=e.message, executed=executed, skipped=skipped)
            except Exception as e:
                logger.exception("Unexpected failure in %s on step %s", action.action, step.id)
                return SequenceResult(
                    SequenceStatus.ABORTED,
                    error=f"An unexpected error occurred: {e}",
                    executed=executed,
                    skipped=skipped,
                )
            executed += 1

        return SequenceResult(SequenceStatus.COMPLETED, next_step_id=target, executed=executed, skipped=skipped)

    # ------------------------------------------------------------------
    # Value resolution
    # ------------------------------------------------------------------

    def _resolve(self, raw_path: str, step: StepDefinition) -> Any:
        step_ids = [s.id for s in self.session.tool.steps] if self.session.tool else []
        return resolve(
            FieldPath.parse(raw_path),
            self.session.form_data,
            self.session.response_data,
            step.id,
            step_ids,
        )

    def build_body(self, step: StepDefinition, input_mapping: Dict[str, str]) -> Dict[str, Any]:
        body = {}
        for key, raw_path in input_mapping.items():
            value = self._resolve(raw_path, step)
            body[key] = None if value is MISSING else value
        return body

    def _resolve_literal(self, step: StepDefinition, value: Any) -> Any:
        """Resolve path-like strings inside a dataToStore payload."""
        if isinstance(value, str):
            found = self._resolve(value, step)
            return value if found is MISSING else found
        if isinstance(value, dict):
            return {key: self._resolve_literal(step, item) for key, item in value.items()}
        if isinstance(value, list):
            return [self._resolve_literal(step, item) for item in value]
        return value

    # ------------------------------------------------------------------
    # Action handlers
    # ------------------------------------------------------------------

    def _call_remote(self, step: StepDefinition, action: RemoteAction) -> None:
        if not action.api_endpoint:
            raise ConfigurationError(
                f"API endpoint is not defined for {action.action} on step '{step.id}'"
            )

        method = (action.method or 'POST').upper()
        endpoint = action.api_endpoint
        body = self.build_body(step, action.input_mapping)

        if isinstance(action, GetSheetInfoAction) and method == 'GET':
            identifier = self._resolve(action.identifier_field, step)
            if is_empty(identifier):
                raise ConfigurationError(f"{action.identifier_field} is not defined")
            endpoint = f"{endpoint.rstrip('/')}/{identifier}"
            payload = None
        elif step.type == StepType.PROMPT or action.prompt:
            payload = {'promptContext': action.prompt_context or '', 'data': body}
        else:
            payload = body

        result = self.backend.request(method, endpoint, payload)
        self._store_result(step, action, result)

    def _store_result(self, step: StepDefinition, action: BaseAction, result: Any) -> None:
        if isinstance(result, dict) and isinstance(result.get('message'), str) and result['message']:
            self.session.message = StepMessage(level='INFO', message=result['message'])

        alias = action.alias
        if not alias:
            return

        stored = result['data'] if isinstance(result, dict) and 'data' in result else result
        self.session.response_data[alias] = stored
        self._preseed_grid(step, alias, result, stored)

    def _preseed_grid(self, step: StepDefinition, alias: str, result: Any, stored: Any) -> None:
        following = self.session.tool.successor(step) if self.session.tool else None
        if following is None or following.type != StepType.GRID or following.data_source != alias:
            return

        rows = None
        if isinstance(stored, list):
            rows = stored
        elif isinstance(stored, dict) and isinstance(stored.get('rows'), list):
            rows = stored['rows']
        elif isinstance(result, dict) and isinstance(result.get('rows'), list):
            rows = result['rows']

        if rows is not None:
            seed_rows(self.session, following, rows)
            logger.debug("Seeded %d row(s) into grid step %s", len(rows), following.id)

    def _store_local(self, step: StepDefinition, action: StoreLocalAction) -> None:
        alias = action.alias
        if not alias:
            raise ConfigurationError(f"storeLocal on step '{step.id}' needs storeDataAs")

        if action.input_mapping:
            data = self.build_body(step, action.input_mapping)
        elif action.data_to_store is not None:
            data = self._resolve_literal(step, action.data_to_store)
        else:
            data = dict(self.session.step_values(step.id))

        self.session.response_data[alias] = data
        self._preseed_grid(step, alias, data, data)

    def _navigate(self, step: StepDefinition, action: NavigationAction) -> str:
        target = action.target
        if not target:
            raise ConfigurationError(f"Navigation on step '{step.id}' has no goToStep")
        if self.session.run_id:
            self.backend.save_run_state(self.session.run_id, {
                'currentStepId': target,
                'formData': self.session.form_data,
            })
        return target

    def _dispatch_worker(self, step: StepDefinition, action: WorkerAction) -> Job:
        if self.session.job is not None:
            raise JobAlreadyActiveError(self.session.job.action_id)

        tool = self.session.tool
        if not self.session.run_id:
            definition = tool.model_dump(mode='json', by_alias=True, exclude_none=True) if tool else {}
            self.session.run_id = self.backend.start_run(
                tool.id if tool else '', definition, self.session.form_data
            )
            logger.info("Started run %s", self.session.run_id)

        self.backend.dispatch_action(self.session.run_id, {
            'actionId': action.action_id,
            'currentStepId': step.id,
            'formData': self.session.form_data,
            'runData': self.session.response_data,
        })
        return Job(action_id=action.action_id, run_id=self.session.run_id, step_id=step.id, action=action)
