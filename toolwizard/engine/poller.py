"""Job poller - watches one worker job until it reaches a terminal status."""

import logging
import time
from typing import Callable, Optional

from .backend import ActionBackend, JobStatusReport
from .errors import JobAlreadyActiveError
from .session import Job, JobStatus

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 4.0


class JobPoller:
    """Polls the run-status endpoint for the active job.

    The poller's lifetime is the presence of an active job: clearing it with
    ``cancel()`` is the cancellation signal, and a tick that finds no job does
    nothing. Terminal outcomes are handed to the callbacks exactly once.
    """

    def __init__(
        self,
        backend: ActionBackend,
        interval: float = DEFAULT_POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        on_completed: Optional[Callable[[Job, JobStatusReport], None]] = None,
        on_failed: Optional[Callable[[Job, JobStatusReport], None]] = None,
        on_error: Optional[Callable[[Job, Exception], None]] = None,
    ):
        self.backend = backend
        self.interval = interval
        self.sleep = sleep
        self.on_completed = on_completed
        self.on_failed = on_failed
        self.on_error = on_error
        self._job: Optional[Job] = None

    @property
    def job(self) -> Optional[Job]:
        return self._job

    @property
    def active(self) -> bool:
        return self._job is not None

    def start(self, job: Job) -> None:
        if self._job is not None:
            raise JobAlreadyActiveError(self._job.action_id)
        logger.info("Polling job %s of run %s every %ss", job.action_id, job.run_id, self.interval)
        self._job = job

    def cancel(self) -> None:
        if self._job is not None:
            logger.info("Stopped polling job %s", self._job.action_id)
        self._job = None

    def tick(self) -> Optional[JobStatusReport]:
        """One timer callback: query status and act on terminal states."""
        job = self._job
        if job is None:
            return None

        try:
            report = self.backend.get_job_status(job.run_id, job.action_id)
        except Exception as e:
            if self._job is not job:
                return None
            logger.error("Polling job %s failed: %s", job.action_id, e)
            self._job = None
            if self.on_error:
                self.on_error(job, e)
            return None

        if self._job is not job:
            logger.debug("Discarding status for cancelled job %s", job.action_id)
            return None

        if report.status == JobStatus.COMPLETED:
            logger.info("Job %s completed", job.action_id)
            job.status = JobStatus.COMPLETED
            self._job = None
            if self.on_completed:
                self.on_completed(job, report)
        elif report.status == JobStatus.FAILED:
            logger.warning("Job %s failed: %s", job.action_id, report.error)
            job.status = JobStatus.FAILED
            job.error = report.error
            self._job = None
            if self.on_failed:
                self.on_failed(job, report)
        else:
            logger.debug("Job %s still pending", job.action_id)

        return report

    def wait(self, max_polls: Optional[int] = None) -> Optional[JobStatusReport]:
        """Sleep-and-tick until the job settles, is cancelled, or max_polls runs out."""
        last = None
        polls = 0
        while self._job is not None:
            if max_polls is not None and polls >= max_polls:
                break
            self.sleep(self.interval)
            last = self.tick()
            polls += 1
        return last
