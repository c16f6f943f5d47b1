"""Shell command execution.

Commands are expanded against a Context first and only then handed to
``<shell> -c``, so the Context lock is never held while a subprocess runs.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

from shellkit.core.context import Context, get_context
from shellkit.core.errors import CommandError

logger = logging.getLogger(__name__)

DEFAULT_SHELL = "sh"


@dataclass(frozen=True)
class CmdResult:
    """Exit status, stdout and stderr of one shell invocation."""

    status: int
    output: str
    error: str

    @property
    def ok(self) -> bool:
        return self.status == 0


def run_cmd_with_status(
    command: str,
    context: Optional[Context] = None,
    shell: Optional[str] = None,
    stdin: Optional[str] = None,
) -> CmdResult:
    """Expand and run a shell command, capturing its output.

    Never raises for command failures: a command that cannot be spawned
    yields status 1 with the reason in ``error``.

    Args:
        command: Command line, expanded against the context before running
        context: Variable context (defaults to the process-wide one)
        shell: Shell executable (defaults to ``sh``)
        stdin: Optional text fed to the command's standard input

    Returns:
        Command result
    """
    if context is None:
        context = get_context()
    expanded = context.expand(command)
    shell = shell or DEFAULT_SHELL
    logger.debug(f"Running: {shell} -c {expanded!r}")

    try:
        proc = subprocess.run(
            [shell, "-c", expanded],
            input=stdin,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as e:
        logger.warning(f"Failed to spawn {shell}: {e}")
        return CmdResult(status=1, output="", error=str(e))

    # A negative return code means the process was killed by a signal
    status = proc.returncode if proc.returncode >= 0 else 1
    return CmdResult(status=status, output=proc.stdout, error=proc.stderr)


def run_cmd(
    command: str,
    context: Optional[Context] = None,
    shell: Optional[str] = None,
) -> str:
    """Run a shell command and return its stdout.

    Args:
        command: Command line
        context: Variable context
        shell: Shell executable

    Returns:
        Captured stdout

    Raises:
        CommandError: If the command exits non-zero
    """
    result = run_cmd_with_status(command, context=context, shell=shell)
    if not result.ok:
        raise CommandError(
            f"Command failed with status {result.status}: {command}\n{result.error}".rstrip(),
            result=result,
        )
    return result.output


def shell_exec(
    command: str,
    silent: bool = False,
    context: Optional[Context] = None,
    shell: Optional[str] = None,
) -> str:
    """Capture a command's output like ``$(...)``.

    Args:
        command: Command line
        silent: Leave stderr out of the error message
        context: Variable context
        shell: Shell executable

    Returns:
        Stripped stdout

    Raises:
        CommandError: If the command exits non-zero
    """
    result = run_cmd_with_status(command, context=context, shell=shell)
    if result.ok:
        return result.output.strip()
    if silent:
        raise CommandError(f"Command failed with status {result.status}", result=result)
    raise CommandError(
        f"Command failed with status {result.status}: {result.error.strip()}",
        result=result,
    )
