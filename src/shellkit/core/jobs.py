"""Background job control.

Each background job runs one shell command on its own worker thread and
reports a single CmdResult through a one-shot channel. A job stays in the
registry until exactly one ``wait`` removes it; waiting again on the same id
raises JobNotFoundError instead of blocking.

A wait with a timeout that expires abandons the worker: the subprocess keeps
running to completion in the background and its result is discarded. There
is no way to cancel an arbitrary shell command here.
"""

from __future__ import annotations

import logging
import math
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from threading import Lock
from typing import Dict, List, Optional, Tuple

from shellkit.core.context import Context, get_context
from shellkit.core.errors import JobLimitError, JobNotFoundError, JobTimeoutError
from shellkit.core.process import CmdResult, run_cmd_with_status

logger = logging.getLogger(__name__)


class JobState(Enum):
    """Lifecycle state of a background job."""
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


@dataclass
class Job:
    """A registered background job."""

    id: int
    command: str
    thread: threading.Thread = field(repr=False)
    channel: "queue.Queue[CmdResult]" = field(repr=False)
    state: JobState = JobState.RUNNING
    result: Optional[CmdResult] = None

    @property
    def detached(self) -> bool:
        """Whether a timed-out wait abandoned this job."""
        return self.state is JobState.TIMED_OUT


def _run_job(
    job_id: int,
    command: str,
    channel: "queue.Queue[CmdResult]",
    context: Context,
    shell: Optional[str],
) -> None:
    """Worker body: run the command and send exactly one result."""
    try:
        result = run_cmd_with_status(command, context=context, shell=shell)
    except Exception as e:
        logger.exception(f"[{job_id}] Job worker failed")
        result = CmdResult(status=1, output="", error=str(e))
    channel.put(result)
    logger.debug(f"[{job_id}] Job finished with status {result.status}")


class JobRegistry:
    """Registry of background jobs keyed by id."""

    def __init__(
        self,
        context: Optional[Context] = None,
        shell: Optional[str] = None,
        max_jobs: Optional[int] = None,
    ):
        """Initialize job registry.

        Args:
            context: Context used to expand job commands
            shell: Shell executable for job commands
            max_jobs: Maximum number of registered jobs, or None for no limit.
                      Every job holds one OS thread until it finishes.
        """
        self.context = context if context is not None else get_context()
        self.shell = shell
        self.max_jobs = max_jobs
        self._jobs: Dict[int, Job] = {}
        self._detached: Dict[int, Job] = {}
        self._lock = Lock()
        self._counter = 0
        self._counter_lock = Lock()

    def _next_id(self) -> int:
        with self._counter_lock:
            self._counter += 1
            return self._counter

    def background(self, command: str) -> int:
        """Start a command in the background.

        Args:
            command: Shell command, expanded by the worker before running

        Returns:
            Job id

        Raises:
            JobLimitError: If ``max_jobs`` jobs are already registered
        """
        channel: "queue.Queue[CmdResult]" = queue.Queue(maxsize=1)
        job_id = self._next_id()
        thread = threading.Thread(
            target=_run_job,
            args=(job_id, command, channel, self.context, self.shell),
            name=f"shellkit-job-{job_id}",
            daemon=True,
        )
        job = Job(id=job_id, command=command, thread=thread, channel=channel)

        with self._lock:
            self._prune_detached()
            if self.max_jobs is not None and len(self._jobs) >= self.max_jobs:
                raise JobLimitError(
                    f"Job limit reached ({self.max_jobs} registered jobs)",
                    job_id=job_id,
                )
            self._jobs[job_id] = job

        thread.start()
        logger.info(f"[{job_id}] Started background job")
        return job_id

    def wait_result(self, job_id: int, timeout: Optional[float] = None) -> CmdResult:
        """Wait for a job and return its full result.

        The job is removed from the registry before blocking, so only one
        caller can ever wait on a given id.

        Args:
            job_id: Job id returned by ``background``
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            Command result

        Raises:
            JobNotFoundError: If the id is unknown or already waited on
            JobTimeoutError: If the deadline expires first
        """
        with self._lock:
            job = self._jobs.pop(job_id, None)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found", job_id=job_id)

        if timeout is not None and math.isinf(timeout):
            timeout = None

        try:
            if timeout is None:
                logger.info(f"[{job_id}] Waiting for job to complete...")
                result = job.channel.get()
            else:
                logger.info(f"[{job_id}] Waiting for job to complete (timeout: {timeout}s)...")
                result = job.channel.get(timeout=min(max(0.0, timeout), threading.TIMEOUT_MAX))
        except queue.Empty:
            job.state = JobState.TIMED_OUT
            with self._lock:
                self._detached[job_id] = job
            logger.warning(
                f"[{job_id}] Timed out after {timeout}s; job left running in background"
            )
            raise JobTimeoutError(
                f"Job {job_id} timed out after {timeout}s",
                job_id=job_id,
                timeout=timeout,
            ) from None
        except BaseException:
            # Interrupted wait: the job can still be waited on
            with self._lock:
                self._jobs[job_id] = job
            raise

        job.thread.join()
        job.state = JobState.COMPLETED
        job.result = result
        return result

    def wait(self, job_id: int, timeout: Optional[float] = None) -> int:
        """Wait for a job and return its exit status.

        Args:
            job_id: Job id returned by ``background``
            timeout: Seconds to wait, or None to wait indefinitely

        Returns:
            Exit status

        Raises:
            JobNotFoundError: If the id is unknown or already waited on
            JobTimeoutError: If the deadline expires first
        """
        return self.wait_result(job_id, timeout=timeout).status

    def list(self) -> List[Tuple[int, str]]:
        """List registered jobs as (id, command) pairs sorted by id."""
        with self._lock:
            return sorted((job.id, job.command) for job in self._jobs.values())

    def detached(self) -> List[Tuple[int, str]]:
        """List abandoned jobs whose worker is still running."""
        with self._lock:
            self._prune_detached()
            return sorted((job.id, job.command) for job in self._detached.values())

    def _prune_detached(self) -> None:
        # Caller holds self._lock
        self._detached = {
            jid: job for jid, job in self._detached.items() if job.thread.is_alive()
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


_registry: Optional[JobRegistry] = None


def get_registry() -> JobRegistry:
    """Get or create the process-wide job registry.

    Returns:
        Default registry bound to the default context
    """
    global _registry
    if _registry is None:
        _registry = JobRegistry()
    return _registry


def reset_registry(**kwargs) -> JobRegistry:
    """Replace the process-wide job registry.

    Args:
        **kwargs: Passed to JobRegistry

    Returns:
        The new registry
    """
    global _registry
    _registry = JobRegistry(**kwargs)
    return _registry
