"""Exception types raised by the shellkit runtime."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from shellkit.core.process import CmdResult


class ShellkitError(Exception):
    """Base class for all shellkit errors."""


class StreamError(ShellkitError):
    """A strict stream stage received a malformed argument."""


class CommandError(ShellkitError):
    """A shell command exited with a non-zero status."""

    def __init__(self, message: str, result: Optional[CmdResult] = None):
        super().__init__(message)
        self.result = result


class JobError(ShellkitError):
    """Base class for job control errors."""

    def __init__(self, message: str, job_id: Optional[int] = None):
        super().__init__(message)
        self.job_id = job_id


class JobNotFoundError(JobError):
    """No job with this id is registered (never started or already waited on)."""


class JobTimeoutError(JobError):
    """The wait deadline expired; the job keeps running detached."""

    def __init__(self, message: str, job_id: Optional[int] = None, timeout: float = 0.0):
        super().__init__(message, job_id)
        self.timeout = timeout


class JobLimitError(JobError):
    """The registry already holds the configured maximum number of jobs."""


class ConfigError(ShellkitError):
    """Configuration could not be loaded or validated."""
