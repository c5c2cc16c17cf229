"""Tests for WizardSession lifecycle helpers."""

from toolwizard.engine.schema import ToolDefinition
from toolwizard.engine.session import Job, JobStatus, StepMessage, WizardSession


def make_tool():
    return ToolDefinition.model_validate({'id': 't', 'steps': [{'id': 'a'}, {'id': 'b'}]})


def test_job_status_from_raw():
    """Backend status strings map onto three states."""
    assert JobStatus.from_raw('Completed') == JobStatus.COMPLETED
    assert JobStatus.from_raw('SUCCESS') == JobStatus.COMPLETED
    assert JobStatus.from_raw('failed') == JobStatus.FAILED
    assert JobStatus.from_raw('ERROR') == JobStatus.FAILED
    assert JobStatus.from_raw('RUNNING') == JobStatus.PENDING
    assert JobStatus.from_raw(None) == JobStatus.PENDING


def test_navigate_appends_history_and_clears_validation():
    """Navigation records history and drops field errors only."""
    session = WizardSession(tool=make_tool())
    session.validation_errors = {'x': 'x is required.'}
    session.error = 'kept'

    session.navigate_to('a')
    session.navigate_to('b')

    assert session.step_history == ['a', 'b']
    assert session.current_step.id == 'b'
    assert session.validation_errors == {}
    assert session.error == 'kept'


def test_restart_keeps_tool():
    """restart clears run state but not the definition."""
    session = WizardSession(tool=make_tool())
    session.navigate_to('a')
    session.form_data['a'] = {'x': 1}
    session.job = Job(action_id='w', run_id='r', step_id='a')
    session.message = StepMessage(level='INFO', message='hi')

    session.restart()

    assert session.tool is not None
    assert session.current_step is None
    assert session.form_data == {}
    assert session.job is None
    assert session.message is None


def test_clear_drops_everything():
    """clear returns the session to its empty lifecycle start."""
    session = WizardSession(tool=make_tool(), load_error='failed')
    session.issued_row_ids.add('r1')

    session.clear()

    assert session == WizardSession()
