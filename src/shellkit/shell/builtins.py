"""Built-in commands for the shell.

Provides dot-prefixed commands like .help, .bg, .wait and .vars.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from shellkit.core.errors import JobNotFoundError, JobTimeoutError
from shellkit.dispatch import format_call_stack

logger = logging.getLogger(__name__)


class BuiltinCommand:
    """A built-in shell command."""

    def __init__(self, name: str, description: str, func: Callable):
        """Initialize builtin command.

        Args:
            name: Command name (with or without leading dot)
            description: Help text
            func: Function to execute
        """
        self.name = name.lstrip('.')
        self.description = description
        self.func = func

    def execute(self, *args: Any, **kwargs: Any) -> Any:
        return self.func(*args, **kwargs)


class BuiltinRegistry:
    """Registry of built-in shell commands."""

    def __init__(self):
        self.commands: Dict[str, BuiltinCommand] = {}

    def register(self, name: str, description: str) -> Callable:
        """Decorator to register a built-in command.

        Args:
            name: Command name
            description: Help text

        Returns:
            Decorator function
        """
        def decorator(func: Callable) -> Callable:
            cmd = BuiltinCommand(name, description, func)
            self.commands[cmd.name] = cmd
            logger.debug(f"Registered builtin: .{cmd.name}")
            return func
        return decorator

    def get(self, name: str) -> Optional[BuiltinCommand]:
        """Get a built-in command.

        Args:
            name: Command name (with or without leading dot)

        Returns:
            Command if found, None otherwise
        """
        return self.commands.get(name.lstrip('.'))

    def list_commands(self) -> list[BuiltinCommand]:
        return list(self.commands.values())


_registry = BuiltinRegistry()


def get_registry() -> BuiltinRegistry:
    """Get the global builtin registry."""
    return _registry


def _resolve(context: Any) -> Any:
    if context is None:
        from shellkit.shell.interpreter import get_execution_context
        context = get_execution_context()
    return context


@_registry.register("help", "Show help for built-ins and pipeline commands")
def help_command(args: Optional[str] = None, context: Any = None) -> str:
    """Show help information.

    Args:
        args: Unused
        context: Execution context (unused, for compatibility)

    Returns:
        Help text
    """
    from shellkit.shell.interpreter import SOURCES, STAGES

    lines = [
        "shellkit - bash-flavored pipeline shell",
        "",
        "Available built-in commands (prefix with .):",
        "",
    ]
    for cmd in _registry.list_commands():
        lines.append(f"  .{cmd.name:<15} {cmd.description}")

    lines.extend([
        "",
        f"Sources: {', '.join(sorted(SOURCES))}",
        f"Stages:  {', '.join(sorted(name for name, s in STAGES.items() if not s.terminal))}",
        f"Sinks:   {', '.join(sorted(name for name, s in STAGES.items() if s.terminal))}",
        "",
        "Pipeline syntax:",
        "  cat access.log | grep GET | cut 7 ' ' | sort | uniq",
        "",
        "Variable assignment:",
        "  NAME=world",
        "  $USERS = cat /etc/passwd | cut 1 :",
        "",
        "Use .exit or Ctrl+D to quit",
    ])
    return '\n'.join(lines)


@_registry.register("vars", "List all variables")
def vars_command(args: Optional[str] = None, context: Any = None) -> str:
    """List variables, optionally only those starting with a prefix.

    Args:
        args: Optional name prefix
        context: Execution context

    Returns:
        Variable listing
    """
    context = _resolve(context)
    variables = context.context.snapshot()
    if args:
        variables = {k: v for k, v in variables.items() if k.startswith(args.strip())}
    if not variables:
        return "No variables defined"

    lines = ["Variables:"]
    for name in sorted(variables):
        value = variables[name]
        if len(value) > 60:
            value = value[:57] + "..."
        lines.append(f"  {name}={value}")
    return '\n'.join(lines)


@_registry.register("set", "Set a variable: .set NAME value")
def set_command(args: Optional[str] = None, context: Any = None) -> str:
    context = _resolve(context)
    if not args or not args.split(None, 1)[0]:
        return "Usage: .set NAME value"
    parts = args.split(None, 1)
    name = parts[0]
    value = parts[1] if len(parts) > 1 else ""
    context.context.set(name, context.context.expand(value))
    return f"{name}={context.context.get(name)}"


@_registry.register("unset", "Remove a variable: .unset NAME")
def unset_command(args: Optional[str] = None, context: Any = None) -> str:
    context = _resolve(context)
    if not args:
        return "Usage: .unset NAME"
    for name in args.split():
        context.context.unset(name)
    return f"Unset {args.strip()}"


@_registry.register("expand", "Expand $VAR references in text")
def expand_command(args: Optional[str] = None, context: Any = None) -> str:
    context = _resolve(context)
    return context.context.expand(args or "")


@_registry.register("bg", "Run a shell command as a background job")
def bg_command(args: Optional[str] = None, context: Any = None) -> str:
    """Start a background job.

    Args:
        args: Shell command
        context: Execution context

    Returns:
        Job id message
    """
    context = _resolve(context)
    if not args:
        return "Usage: .bg <command>"
    job_id = context.jobs.background(args)
    return f"[{job_id}] {args}"


@_registry.register("wait", "Wait for a job: .wait ID [TIMEOUT]")
def wait_command(args: Optional[str] = None, context: Any = None) -> str:
    """Wait for a background job.

    Args:
        args: Job id and optional timeout in seconds
        context: Execution context

    Returns:
        Status message
    """
    context = _resolve(context)
    parts = (args or "").split()
    if not parts or len(parts) > 2:
        return "Usage: .wait ID [TIMEOUT]"
    try:
        job_id = int(parts[0])
        timeout = float(parts[1]) if len(parts) > 1 else None
    except ValueError:
        return f"Invalid arguments: {args}"

    try:
        result = context.jobs.wait_result(job_id, timeout=timeout)
    except JobNotFoundError:
        return f"Job {job_id} not found"
    except JobTimeoutError:
        return f"[{job_id}] timed out after {timeout}s (left running)"

    lines = [f"[{job_id}] exited with status {result.status}"]
    if result.output:
        lines.append(result.output.rstrip("\n"))
    if result.error:
        lines.append(result.error.rstrip("\n"))
    return '\n'.join(lines)


@_registry.register("jobs", "List background jobs")
def jobs_command(args: Optional[str] = None, context: Any = None) -> str:
    context = _resolve(context)
    jobs = context.jobs.list()
    detached = context.jobs.detached()
    if not jobs and not detached:
        return "No running jobs."
    lines = []
    if jobs:
        lines.append("Running jobs:")
        lines.extend(f"  [{job_id}] {command}" for job_id, command in jobs)
    if detached:
        lines.append("Detached jobs:")
        lines.extend(f"  [{job_id}] {command}" for job_id, command in detached)
    return '\n'.join(lines)


@_registry.register("history", "Show command history")
def history_command(args: Optional[str] = None, context: Any = None) -> str:
    context = _resolve(context)
    history = context.get_history()
    if not history:
        return "No command history"

    lines = ["Command history:"]
    for i, cmd in enumerate(history, 1):
        lines.append(f"  {i}. {cmd}")
    return '\n'.join(lines)


@_registry.register("stack", "Show the call stack")
def stack_command(args: Optional[str] = None, context: Any = None) -> str:
    context = _resolve(context)
    return format_call_stack(context.context)


@_registry.register("explain", "Show the Python equivalent of a pipeline")
def explain_command(args: Optional[str] = None, context: Any = None) -> str:
    """Translate a pipeline into Stream calls.

    Args:
        args: Pipeline text
        context: Execution context (unused, for compatibility)

    Returns:
        Python code
    """
    from shellkit.shell.parser import PipelineParser

    if not args:
        return "Usage: .explain <pipeline>"
    parser = PipelineParser()
    return parser.to_python_code(parser.parse(args))


@_registry.register("exit", "Exit the shell")
def exit_command(args: Optional[str] = None, context: Any = None) -> None:
    """Exit the shell.

    Raises:
        SystemExit: To exit the shell
    """
    logger.info("Exiting shell...")
    raise SystemExit(0)


def is_builtin(command: str) -> bool:
    """Check if a command is a built-in."""
    return _registry.get(command) is not None


def execute_builtin(command: str, args: Optional[str] = None, context: Any = None) -> Any:
    """Execute a built-in command.

    Args:
        command: Command name
        args: Argument string (e.g., "3 1.5" for ".wait 3 1.5")
        context: Execution context

    Returns:
        Command result

    Raises:
        ValueError: If command not found
    """
    cmd = _registry.get(command)
    if cmd is None:
        raise ValueError(f"Unknown built-in command: {command}")
    return cmd.execute(args, context=context)

