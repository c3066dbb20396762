#!/usr/bin/env python3
"""
Job Poller

Polls a Redfish task (or Dell job) at a fixed interval until it reaches a
terminal state or the maximum wait elapses. The same loop serves create,
update and delete jobs.
"""

import time
import logging
from typing import Callable, Optional

from .errors import SubmissionError, JobFailedError, JobTimeoutError, TRANSIENT_ERRORS
from .models import JobResult, JOB_SUCCEEDED, JOB_FAILED, JOB_TIMED_OUT
from .redfish_client import RedfishClient

DEFAULT_POLL_INTERVAL = 10

SUCCEEDED_STATES = frozenset({'Completed'})
FAILED_STATES = frozenset({'Exception', 'Killed', 'Cancelled', 'Failed', 'CompletedWithErrors'})


class JobPoller:
    """
    Wait for a remote job to finish.

    Transport errors while polling are treated as transient and the loop
    carries on until the deadline. A local timeout does not cancel the job
    on the controller.
    """

    def __init__(self, client: RedfishClient, interval: float = DEFAULT_POLL_INTERVAL,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 logger: Optional[logging.Logger] = None) -> None:
        """
        Initialize the poller.

        Args:
            client: Redfish client used to read task status
            interval: Seconds between polls
            sleep: Blocking wait function
            clock: Monotonic clock returning seconds
            logger: Optional logger instance
        """
        self.client = client
        self.interval = interval
        self._sleep = sleep
        self._clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def wait(self, job_ref: str, timeout: float, interval: Optional[float] = None) -> JobResult:
        """
        Poll a job until it is terminal or the timeout elapses.

        The first poll happens one interval after the call; the loop never
        sleeps past the deadline.

        Args:
            job_ref: Task URI from the accepted mutating response
            timeout: Maximum seconds to wait
            interval: Optional override of the poll interval

        Returns:
            JobResult with outcome Succeeded, Failed or TimedOut

        Raises:
            SubmissionError: If the job reference is empty
        """
        if not job_ref:
            raise SubmissionError("Cannot poll a job without a job reference", stage='poll')

        interval = self.interval if interval is None else interval
        start = self._clock()
        deadline = start + timeout
        polls = 0
        state = None
        percent = None
        message = None

        self.logger.info(f"Waiting for job {job_ref} (timeout: {timeout}s, interval: {interval}s)")

        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                break

            self._sleep(min(interval, remaining))
            polls += 1

            try:
                status = self.client.get_task_status(job_ref)
            except TRANSIENT_ERRORS as e:
                self.logger.warning(f"Error checking job status for {job_ref}, retrying: {e}")
                continue

            state = status.get('state')
            percent = status.get('percent_complete')
            message = status.get('message')
            self.logger.info(f"Job status: {state} ({percent if percent is not None else 0}%) - {message or ''}")

            if state in SUCCEEDED_STATES:
                self.logger.info(f"Job {job_ref} completed successfully")
                return self._result(job_ref, JOB_SUCCEEDED, state, percent, message, polls, start)
            if state in FAILED_STATES:
                self.logger.error(f"Job {job_ref} failed: {message}")
                return self._result(job_ref, JOB_FAILED, state, percent, message, polls, start)

        self.logger.error(f"Job status check timed out after {timeout} seconds")
        return self._result(job_ref, JOB_TIMED_OUT, state, percent, message, polls, start)

    def _result(self, job_ref, outcome, state, percent, message, polls, start) -> JobResult:
        return {
            'job_ref': job_ref,
            'outcome': outcome,
            'state': state,
            'percent_complete': percent,
            'message': message,
            'polls': polls,
            'elapsed': self._clock() - start,
        }


def raise_for_outcome(result: JobResult) -> None:
    """Raise JobFailedError or JobTimeoutError unless the job succeeded."""
    if result['outcome'] == JOB_FAILED:
        raise JobFailedError(f"Job {result['job_ref']} failed with state {result['state']}",
                             job_ref=result['job_ref'], detail=result['message'])
    if result['outcome'] == JOB_TIMED_OUT:
        raise JobTimeoutError(
            f"Timeout reached when waiting for job {result['job_ref']} to finish "
            f"(last state: {result['state'] or 'unknown'})",
            job_ref=result['job_ref']
        )
