"""Core runtime: variable context, expansion, streams and job control."""

from __future__ import annotations

from shellkit.core.context import CallFrame, Context, get_context, reset_context
from shellkit.core.errors import (
    CommandError,
    ConfigError,
    JobError,
    JobLimitError,
    JobNotFoundError,
    JobTimeoutError,
    ShellkitError,
    StreamError,
)
from shellkit.core.expansion import expand
from shellkit.core.jobs import Job, JobRegistry, JobState, get_registry, reset_registry
from shellkit.core.process import CmdResult, run_cmd, run_cmd_with_status, shell_exec
from shellkit.core.stream import Stream

__all__ = [
    "CallFrame",
    "CmdResult",
    "CommandError",
    "ConfigError",
    "Context",
    "Job",
    "JobError",
    "JobLimitError",
    "JobNotFoundError",
    "JobRegistry",
    "JobState",
    "JobTimeoutError",
    "ShellkitError",
    "Stream",
    "StreamError",
    "expand",
    "get_context",
    "get_registry",
    "reset_context",
    "reset_registry",
    "run_cmd",
    "run_cmd_with_status",
    "shell_exec",
]
