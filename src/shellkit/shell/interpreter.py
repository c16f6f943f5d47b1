"""Shell interpreter for executing parsed pipelines.

Translates parsed command pipelines into Stream calls and executes them.
The first command of a pipeline is a source, the rest are stages, and a
sink may only come last.
"""

from __future__ import annotations

import logging
import re
import shlex
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from shellkit.core.context import Context, get_context
from shellkit.core.errors import ShellkitError
from shellkit.core.jobs import JobRegistry
from shellkit.core.stream import Stream
from shellkit.shell.parser import Command, ParseError, PipelineParser

logger = logging.getLogger(__name__)

ASSIGNMENT = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)=(.*)$", re.DOTALL)
PIPELINE_ASSIGNMENT = re.compile(r"^\$([A-Za-z_][A-Za-z0-9_]*)\s*=\s*(.+)$", re.DOTALL)


class ShellError(ShellkitError):
    """A pipeline failed to execute."""


@dataclass(frozen=True)
class StageSpec:
    """How a shell command maps onto a Stream method."""

    method: str
    params: Tuple[type, ...] = ()
    defaults: Tuple[Any, ...] = ()
    variadic: bool = False
    joined: bool = False
    shell_text: bool = False
    expands_itself: bool = False
    terminal: bool = False

    def convert(self, name: str, args: List[str], text: Optional[str] = None) -> List[Any]:
        """Check and convert shell arguments to method arguments.

        Stages taking a shell command get the argument text with its quoting
        intact. A single argument is taken as the whole command, so
        `cmd 'ls | wc -l'` runs a shell pipe.

        Args:
            name: Shell command name (for error messages)
            args: Raw string arguments
            text: Argument text as typed, used by shell command stages

        Returns:
            Positional arguments for the Stream method

        Raises:
            ParseError: If the argument count or types are wrong
        """
        if self.variadic:
            if not args:
                raise ParseError(f"{name}: expected at least one argument")
            return [list(args)]
        if self.shell_text:
            if not args:
                raise ParseError(f"{name}: expected a command")
            if len(args) == 1:
                return [args[0]]
            return [text if text else shlex.join(args)]
        if self.joined:
            if not args:
                raise ParseError(f"{name}: expected a command")
            return [" ".join(args)]

        required = len(self.params) - len(self.defaults)
        if not required <= len(args) <= len(self.params):
            expected = str(required) if required == len(self.params) else f"{required}-{len(self.params)}"
            raise ParseError(f"{name}: expected {expected} arguments, got {len(args)}")

        values: List[Any] = list(args) + list(self.defaults[len(args) - required:])
        converted = []
        for param_type, value in zip(self.params, values):
            if param_type is int and isinstance(value, str):
                try:
                    value = int(value)
                except ValueError:
                    raise ParseError(f"{name}: expected an integer, got {value!r}") from None
            converted.append(value)
        return converted


SOURCES: Dict[str, StageSpec] = {
    "cat": StageSpec("from_files", variadic=True, expands_itself=True),
    "cmd": StageSpec("from_cmd", shell_text=True, expands_itself=True),
    "var": StageSpec("from_var", (str,)),
    "echo": StageSpec("from_string", joined=True),
    "lines": StageSpec("from_list", variadic=True),
    "split": StageSpec("from_delimited_string", (str, str)),
}

STAGES: Dict[str, StageSpec] = {
    "grep": StageSpec("grep", (str,)),
    "grep-v": StageSpec("grep_v", (str,)),
    "grep-regex": StageSpec("grep_regex", (str,)),
    "cut": StageSpec("cut", (int, str), ("\t",)),
    "sed": StageSpec("sed", (str, str)),
    "sed-block": StageSpec("sed_block", (str, str, str)),
    "sed-lines": StageSpec("sed_lines", (int, int)),
    "sed-around": StageSpec("sed_around", (str, int)),
    "sed-insert": StageSpec("sed_insert", (str, str)),
    "sed-template": StageSpec("sed_template", (str, str)),
    "sort": StageSpec("sort"),
    "uniq": StageSpec("uniq"),
    "unique": StageSpec("unique"),
    "head": StageSpec("head", (int,), (10,)),
    "tail": StageSpec("tail", (int,), (10,)),
    "trim": StageSpec("trim"),
    "upper": StageSpec("upper"),
    "lower": StageSpec("lower"),
    "reverse": StageSpec("reverse"),
    "pipe": StageSpec("pipe_to_cmd", shell_text=True, expands_itself=True),
    "tee": StageSpec("tee", (str,), expands_itself=True),
    "to-var": StageSpec("to_var", (str,)),
    "to-file": StageSpec("to_file", (str,), expands_itself=True, terminal=True),
    "append": StageSpec("append_to_file", (str,), expands_itself=True, terminal=True),
    "to-string": StageSpec("to_string", terminal=True),
    "count": StageSpec("count", terminal=True),
    "first": StageSpec("first", terminal=True),
    "last": StageSpec("last", terminal=True),
}


class ShellInterpreter:
    """Interprets and executes pipeline lines using the Stream API."""

    def __init__(
        self,
        context: Optional[Context] = None,
        strict: bool = False,
        shell: Optional[str] = None,
    ):
        """Initialize interpreter.

        Args:
            context: Variable context (defaults to the process-wide one)
            strict: Build strict streams
            shell: Shell executable for ``cmd`` and ``pipe``
        """
        self.parser = PipelineParser()
        self.context = context if context is not None else get_context()
        self.strict = strict
        self.shell = shell
        self._last_result: Any = None

    def execute(self, command_line: str) -> Any:
        """Execute a command line.

        Args:
            command_line: Command line to execute

        Returns:
            Result of execution: a Stream, a sink value or None

        Raises:
            ParseError: If the line cannot be parsed
            ShellError: If execution fails
        """
        line = command_line.strip()
        if not line or line.startswith('#'):
            return None

        match = PIPELINE_ASSIGNMENT.match(line)
        if match:
            return self._handle_pipeline_assignment(match.group(1), match.group(2))
        match = ASSIGNMENT.match(line)
        if match:
            return self._handle_assignment(match.group(1), match.group(2))

        commands = self.parser.parse(line)
        if not commands:
            return None
        try:
            result = self._execute_pipeline(commands)
            self._last_result = result
            return result
        except (ParseError, ShellError):
            raise
        except Exception as e:
            logger.error(f"Execution failed: {e}")
            raise ShellError(f"Failed to execute: {line}: {e}") from e

    def _handle_assignment(self, name: str, raw_value: str) -> None:
        """Handle ``NAME=value``; single-quoted values are not expanded."""
        raw_value = raw_value.strip()
        if len(raw_value) >= 2 and raw_value[0] == raw_value[-1] == "'":
            value = raw_value[1:-1]
        else:
            if len(raw_value) >= 2 and raw_value[0] == raw_value[-1] == '"':
                raw_value = raw_value[1:-1]
            value = self.context.expand(raw_value)
        self.context.set(name, value)
        logger.debug(f"Variable assigned: {name}")

    def _handle_pipeline_assignment(self, name: str, pipeline: str) -> None:
        """Handle ``$NAME = <pipeline>`` by storing the pipeline output."""
        result = self.execute(pipeline)
        if isinstance(result, Stream):
            value = result.to_string()
        elif result is None:
            value = ""
        else:
            value = str(result)
        self.context.set(name, value)
        logger.debug(f"Variable assigned from pipeline: {name}")

    def _arguments(self, spec: StageSpec, cmd: Command) -> List[Any]:
        args = cmd.args
        if not spec.expands_itself:
            args = [self.context.expand(arg) for arg in args]
        return spec.convert(cmd.name, args, cmd.text)

    def _execute_pipeline(self, commands: List[Command]) -> Any:
        """Execute a pipeline of commands.

        Args:
            commands: List of commands to execute

        Returns:
            Result of final command
        """
        first = commands[0]
        source = SOURCES.get(first.name)
        if source is None:
            raise ShellError(
                f"Pipeline must start with one of {', '.join(sorted(SOURCES))}, got '{first.name}'"
            )
        constructor = getattr(Stream, source.method)
        current: Any = constructor(
            *self._arguments(source, first),
            context=self.context,
            strict=self.strict,
            shell=self.shell,
        )

        for i, cmd in enumerate(commands[1:], 1):
            spec = STAGES.get(cmd.name)
            if spec is None:
                raise ShellError(f"Unknown stage '{cmd.name}'")
            if spec.terminal and i != len(commands) - 1:
                raise ShellError(f"'{cmd.name}' ends a pipeline and must come last")
            method = getattr(current, spec.method)
            current = method(*self._arguments(spec, cmd))

        return current

    def get_last_result(self) -> Any:
        """Get the last execution result."""
        return self._last_result


class ExecutionContext:
    """Execution context for shell commands.

    Maintains state across multiple command executions: variables, the job
    registry and history.
    """

    def __init__(
        self,
        context: Optional[Context] = None,
        jobs: Optional[JobRegistry] = None,
        strict: bool = False,
        shell: Optional[str] = None,
    ):
        """Initialize execution context.

        Args:
            context: Variable context (defaults to the process-wide one)
            jobs: Job registry (defaults to a new one bound to the context)
            strict: Build strict streams
            shell: Shell executable
        """
        self.context = context if context is not None else get_context()
        self.jobs = jobs if jobs is not None else JobRegistry(context=self.context, shell=shell)
        self.interpreter = ShellInterpreter(self.context, strict=strict, shell=shell)
        self.history: List[str] = []

    def execute(self, command_line: str) -> Any:
        """Execute command and update history.

        Args:
            command_line: Command to execute

        Returns:
            Execution result
        """
        self.history.append(command_line)
        return self.interpreter.execute(command_line)

    def get_history(self) -> List[str]:
        """Get command history."""
        return self.history.copy()

    def clear_history(self) -> None:
        self.history.clear()


_execution_context: Optional[ExecutionContext] = None


def get_execution_context() -> ExecutionContext:
    """Get or create the global shell execution context.

    Returns:
        Execution context
    """
    global _execution_context
    if _execution_context is None:
        _execution_context = ExecutionContext()
    return _execution_context


def reset_execution_context() -> None:
    """Reset global shell execution context."""
    global _execution_context
    _execution_context = ExecutionContext()
