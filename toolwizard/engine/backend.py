"""ActionBackend interface - all remote side effects go here."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import requests

from .errors import BackendError
from .session import JobStatus

logger = logging.getLogger(__name__)

BODY_METHODS = ('POST', 'PUT', 'PATCH')


@dataclass
class JobStatusReport:
    """Normalised answer of the run-status endpoint for one job."""

    status: JobStatus
    error: Optional[str] = None
    form_data: Optional[Dict[str, Any]] = None
    run_data: Optional[Dict[str, Any]] = None
    current_step_id: Optional[str] = None


def parse_job_status(document: Dict[str, Any], action_id: str) -> JobStatusReport:
    """Extract the status of ``action_id`` from a run document.

    Accepts the full run document (``jobHistory[actionId]`` plus ``formData``,
    ``runData`` and ``currentStepId``) as well as a bare
    ``{status, result?, error?}`` document.
    """
    if 'jobHistory' in document:
        entry = (document.get('jobHistory') or {}).get(action_id) or {}
    else:
        entry = document

    run_data = document.get('runData')
    if run_data is None and isinstance(document.get('result'), dict):
        run_data = document['result']

    return JobStatusReport(
        status=JobStatus.from_raw(entry.get('status')),
        error=entry.get('error'),
        form_data=document.get('formData'),
        run_data=run_data,
        current_step_id=document.get('currentStepId'),
    )


class ActionBackend(ABC):
    """Interface for every call the engine makes to the outside world."""

    @abstractmethod
    def get_tool_definition(self, tool_id: str) -> Dict[str, Any]:
        """Fetch the raw declaration of a tool."""
        pass

    @abstractmethod
    def request(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Any:
        """Call an arbitrary endpoint named by an action.

        Raises:
            BackendError: On non-2xx responses and transport failures
        """
        pass

    @abstractmethod
    def start_run(self, tool_id: str, definition: Dict[str, Any], form_data: Dict[str, Any]) -> str:
        """Create a run record and return its id."""
        pass

    @abstractmethod
    def dispatch_action(self, run_id: str, payload: Dict[str, Any]) -> Any:
        """Fire a worker action for a run."""
        pass

    @abstractmethod
    def save_run_state(self, run_id: str, payload: Dict[str, Any]) -> None:
        """Persist the current step and answers of a run."""
        pass

    @abstractmethod
    def get_job_status(self, run_id: str, action_id: str) -> JobStatusReport:
        """Poll the status of one worker action."""
        pass


class HttpActionBackend(ActionBackend):
    """Real implementation over HTTP with a persistent requests session."""

    def __init__(
        self,
        base_url: str = '',
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url: Prefix for relative endpoints
            headers: Headers sent with every request
            timeout: Per-request timeout in seconds; None leaves it to the transport
            session: Pre-built session (cookies are carried between calls)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Content-Type': 'application/json'})
        if headers:
            self.session.headers.update(headers)

    def _url(self, endpoint: str) -> str:
        if endpoint.startswith(('http://', 'https://')) or not self.base_url:
            return endpoint
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict):
            for key in ('message', 'error'):
                if isinstance(payload.get(key), str) and payload[key]:
                    return payload[key]
        return f"API call failed with status {response.status_code}"

    def _send(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Any:
        url = self._url(endpoint)
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise BackendError(f"Request to {url} failed: {e}")

        if not response.ok:
            message = self._error_message(response)
            logger.warning("%s %s returned %s: %s", method, url, response.status_code, message)
            raise BackendError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise BackendError(f"Response from {url} is not valid JSON", status_code=response.status_code)

    def get_tool_definition(self, tool_id: str) -> Dict[str, Any]:
        return self._send('GET', f'tools/{tool_id}')

    def request(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Any:
        method = (method or 'POST').upper()
        return self._send(method, endpoint, body if method in BODY_METHODS else None)

    def start_run(self, tool_id: str, definition: Dict[str, Any], form_data: Dict[str, Any]) -> str:
        result = self._send('POST', 'runs', {
            'toolId': tool_id,
            'toolDefinition': definition,
            'formData': form_data,
        })
        run_id = result.get('runId') if isinstance(result, dict) else None
        if not run_id:
            raise BackendError("Run was created without a runId")
        return run_id

    def dispatch_action(self, run_id: str, payload: Dict[str, Any]) -> Any:
        return self._send('POST', f'runs/{run_id}/actions', payload)

    def save_run_state(self, run_id: str, payload: Dict[str, Any]) -> None:
        self._send('PUT', f'runs/{run_id}/state', payload)

    def get_job_status(self, run_id: str, action_id: str) -> JobStatusReport:
        document = self._send('GET', f'runs/{run_id}')
        if not isinstance(document, dict):
            raise BackendError(f"Run {run_id} returned an unexpected status document")
        return parse_job_status(document, action_id)


class MockActionBackend(ActionBackend):
    """Mock for testing - records calls and returns scripted responses.

    ``responses`` is keyed by ``(METHOD, endpoint)``; a value that is an
    exception instance is raised instead of returned. ``job_statuses`` is a
    queue of status documents consumed one per poll; once empty, polls report
    PENDING.
    """

    def __init__(self):
        self.calls: List[tuple] = []
        self.tools: Dict[str, Dict[str, Any]] = {}
        self.responses: Dict[tuple, Any] = {}
        self.job_statuses: List[Any] = []
        self.run_id = 'run-1'

    def _answer(self, key: tuple, default: Any = None) -> Any:
        result = self.responses.get(key, default)
        if isinstance(result, Exception):
            raise result
        return result

    def get_tool_definition(self, tool_id: str) -> Dict[str, Any]:
        self.calls.append(('get_tool_definition', tool_id))
        if tool_id not in self.tools:
            raise BackendError(f"Failed to fetch tool definition: {tool_id}", status_code=404)
        return self.tools[tool_id]

    def request(self, method: str, endpoint: str, body: Optional[Dict[str, Any]] = None) -> Any:
        method = (method or 'POST').upper()
        self.calls.append(('request', method, endpoint, body))
        return self._answer((method, endpoint), {})

    def start_run(self, tool_id: str, definition: Dict[str, Any], form_data: Dict[str, Any]) -> str:
        self.calls.append(('start_run', tool_id, form_data))
        self._answer(('POST', 'runs'))
        return self.run_id

    def dispatch_action(self, run_id: str, payload: Dict[str, Any]) -> Any:
        self.calls.append(('dispatch_action', run_id, payload))
        return self._answer(('POST', f'runs/{run_id}/actions'), {'message': 'accepted'})

    def save_run_state(self, run_id: str, payload: Dict[str, Any]) -> None:
        self.calls.append(('save_run_state', run_id, payload))
        self._answer(('PUT', f'runs/{run_id}/state'))

    def get_job_status(self, run_id: str, action_id: str) -> JobStatusReport:
        self.calls.append(('get_job_status', run_id, action_id))
        if not self.job_statuses:
            return JobStatusReport(status=JobStatus.PENDING)
        document = self.job_statuses.pop(0)
        if isinstance(document, Exception):
            raise document
        if isinstance(document, JobStatusReport):
            return document
        return parse_job_status(document, action_id)

    def calls_named(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]
