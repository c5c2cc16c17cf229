"""Tests for JobPoller - worker job status polling."""

import pytest
from toolwizard.engine.backend import MockActionBackend
from toolwizard.engine.errors import BackendError, JobAlreadyActiveError
from toolwizard.engine.poller import DEFAULT_POLL_INTERVAL, JobPoller
from toolwizard.engine.session import Job, JobStatus


@pytest.fixture
def mock_backend():
    return MockActionBackend()


@pytest.fixture
def events():
    return []


@pytest.fixture
def poller(mock_backend, events):
    return JobPoller(
        mock_backend,
        sleep=lambda seconds: events.append(('sleep', seconds)),
        on_completed=lambda job, report: events.append(('completed', job.action_id)),
        on_failed=lambda job, report: events.append(('failed', report.error)),
        on_error=lambda job, error: events.append(('error', str(error))),
    )


def make_job():
    return Job(action_id='apply', run_id='run-1', step_id='confirm')


def test_default_interval_is_four_seconds(mock_backend):
    """Polling defaults to a four second cadence."""
    assert JobPoller(mock_backend).interval == DEFAULT_POLL_INTERVAL == 4.0


def test_tick_without_job_does_nothing(poller, mock_backend):
    """No job means no status request."""
    assert poller.tick() is None
    assert mock_backend.calls == []


def test_pending_keeps_polling(poller, mock_backend, events):
    """A pending status leaves the job active and fires no callback."""
    poller.start(make_job())

    report = poller.tick()

    assert report.status == JobStatus.PENDING
    assert poller.active
    assert events == []


def test_completed_fires_once_and_stops(poller, mock_backend, events):
    """Completion is reported exactly once and polling stops."""
    mock_backend.job_statuses = [{'jobHistory': {'apply': {'status': 'COMPLETED'}}}]
    job = make_job()
    poller.start(job)

    poller.tick()
    poller.tick()

    assert events == [('completed', 'apply')]
    assert not poller.active
    assert job.status == JobStatus.COMPLETED
    assert len(mock_backend.calls_named('get_job_status')) == 1


def test_failed_reports_error(poller, mock_backend, events):
    """A failed job carries its error to the callback."""
    mock_backend.job_statuses = [{'jobHistory': {'apply': {'status': 'FAILED', 'error': 'quota'}}}]
    job = make_job()
    poller.start(job)

    poller.tick()

    assert events == [('failed', 'quota')]
    assert job.error == 'quota'
    assert not poller.active


def test_status_request_failure_stops_polling(poller, mock_backend, events):
    """A failing status request ends polling and reports the error."""
    mock_backend.job_statuses = [BackendError('down')]
    poller.start(make_job())

    poller.tick()

    assert events == [('error', 'down')]
    assert not poller.active


def test_start_refuses_second_job(poller):
    """Only one job may be polled at a time."""
    poller.start(make_job())

    with pytest.raises(JobAlreadyActiveError):
        poller.start(make_job())


def test_result_for_cancelled_job_is_discarded(mock_backend, events):
    """A status that arrives after cancel() is ignored."""
    poller = JobPoller(mock_backend, on_completed=lambda job, report: events.append('completed'))

    def cancel_during_request(run_id, action_id):
        poller.cancel()
        return MockActionBackend.get_job_status(mock_backend, run_id, action_id)

    mock_backend.job_statuses = [{'status': 'COMPLETED'}]
    mock_backend.get_job_status = cancel_during_request
    poller.start(make_job())

    assert poller.tick() is None
    assert events == []


def test_wait_sleeps_between_polls(poller, mock_backend, events):
    """wait() sleeps the interval before each poll until the job settles."""
    mock_backend.job_statuses = [{'status': 'PENDING'}, {'status': 'PENDING'}, {'status': 'SUCCESS'}]
    poller.start(make_job())

    report = poller.wait()

    assert report.status == JobStatus.COMPLETED
    assert events == [('sleep', 4.0), ('sleep', 4.0), ('sleep', 4.0), ('completed', 'apply')]


def test_wait_respects_max_polls(poller, events):
    """max_polls bounds a wait on a job that never settles."""
    poller.start(make_job())

    poller.wait(max_polls=2)

    assert poller.active
    assert events.count(('sleep', 4.0)) == 2
