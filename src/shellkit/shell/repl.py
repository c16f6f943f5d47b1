"""REPL (Read-Eval-Print Loop) for interactive shell.

Provides an interactive command-line interface for building and running
text pipelines, plus the non-interactive entry points used by the CLI.
A line ending in a backslash continues on the next line.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional, TextIO, Tuple

from shellkit.core.stream import Stream
from shellkit.shell.builtins import execute_builtin, get_registry, is_builtin
from shellkit.shell.interpreter import SOURCES, STAGES, ExecutionContext

logger = logging.getLogger(__name__)

try:
    import readline
    HAS_READLINE = True
except ImportError:
    HAS_READLINE = False
    logger.debug("readline not available - history and completion disabled")

CONTINUATION_PROMPT = "... "


def complete(text: str, line: str, context: ExecutionContext) -> List[str]:
    """Completion candidates for the word being typed.

    Args:
        text: Word under the cursor
        line: Whole input line up to the cursor
        context: Execution context (for variable names)

    Returns:
        Sorted candidates
    """
    if text.startswith('$'):
        names = context.context.snapshot()
        return sorted(f"${name}" for name in names if f"${name}".startswith(text))

    before = line[:len(line) - len(text)] if line.endswith(text) else line
    if not before.strip() and text.startswith('.'):
        return sorted(f".{cmd.name}" for cmd in get_registry().list_commands()
                      if f".{cmd.name}".startswith(text))

    segment = before.rsplit('|', 1)[-1]
    if segment.strip():
        return []
    table = STAGES if '|' in before else SOURCES
    return sorted(name for name in table if name.startswith(text))


def join_continued(lines: Iterable[str]) -> Iterator[Tuple[int, str]]:
    """Join backslash-continued lines.

    Args:
        lines: Raw lines

    Yields:
        (first line number, logical line) pairs
    """
    pending: List[str] = []
    start = 0
    for line_num, raw in enumerate(lines, 1):
        line = raw.rstrip('\n')
        if not pending:
            start = line_num
        if line.endswith('\\'):
            pending.append(line[:-1])
            continue
        pending.append(line)
        yield start, ' '.join(part.strip() for part in pending)
        pending = []
    if pending:
        yield start, ' '.join(part.strip() for part in pending)


class REPL:
    """Read-Eval-Print Loop for interactive shell."""

    def __init__(
        self,
        context: Optional[ExecutionContext] = None,
        prompt: str = "shellkit> ",
        history_file: Optional[Path] = None,
    ):
        """Initialize REPL.

        Args:
            context: Execution context (creates new if None)
            prompt: Command prompt string
            history_file: readline history file (defaults to ~/.shellkit_history)
        """
        self.context = context if context is not None else ExecutionContext()
        self.prompt = prompt
        self.running = False
        self._matches: List[str] = []

        if HAS_READLINE:
            self._setup_readline(history_file or Path.home() / ".shellkit_history")

    def _setup_readline(self, history_file: Path) -> None:
        """Setup readline for command history and completion."""
        try:
            readline.read_history_file(str(history_file))
        except OSError:
            pass

        import atexit
        atexit.register(readline.write_history_file, str(history_file))

        readline.set_history_length(1000)
        readline.set_completer_delims(" \t|")
        readline.set_completer(self._completer)
        readline.parse_and_bind("tab: complete")

    def _completer(self, text: str, state: int) -> Optional[str]:
        if state == 0:
            self._matches = complete(text, readline.get_line_buffer(), self.context)
        return self._matches[state] if state < len(self._matches) else None

    def _read_line(self) -> str:
        """Read one logical line, following backslash continuations."""
        parts = []
        line = input(self.prompt)
        while line.endswith('\\'):
            parts.append(line[:-1].strip())
            line = input(CONTINUATION_PROMPT)
        parts.append(line.strip())
        return ' '.join(part for part in parts if part)

    def run(self) -> None:
        """Run the REPL loop until .exit or end of input."""
        self.running = True
        print("shellkit - bash-flavored pipeline shell")
        print("Type .help for available commands")
        print()
        while self.running:
            try:
                line = self._read_line()
                if line:
                    self._execute_line(line)
            except EOFError:
                # Ctrl+D
                print()
                break
            except KeyboardInterrupt:
                # Ctrl+C drops the current line
                print()
            except SystemExit:
                break
        self.running = False
        print("Goodbye!")

    def _execute_line(self, line: str) -> None:
        try:
            result = run_command(line, self.context)
        except SystemExit:
            raise
        except Exception as e:
            logger.debug("Execution failed", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return
        if result is not None:
            print_result(result)


def print_result(result: Any, out: Optional[TextIO] = None) -> None:
    """Print execution result.

    Streams print one line per element; anything else prints as-is.

    Args:
        result: Stream, sink value or builtin output
        out: Output stream (defaults to the current sys.stdout)
    """
    if out is None:
        out = sys.stdout
    if isinstance(result, Stream):
        for line in result:
            print(line, file=out)
    else:
        print(result, file=out)


def run_repl(context: Optional[ExecutionContext] = None) -> None:
    REPL(context=context).run()


def run_command(command: str, context: Optional[ExecutionContext] = None) -> Any:
    """Run a single command non-interactively.

    Args:
        command: Pipeline, assignment or dot-prefixed built-in
        context: Optional execution context

    Returns:
        Command result

    Raises:
        ValueError: For an unknown built-in
    """
    if context is None:
        context = ExecutionContext()

    if not command.startswith('.'):
        return context.execute(command)

    name, _, args = command[1:].partition(' ')
    if not is_builtin(name):
        raise ValueError(f"Unknown built-in command: .{name}")
    return execute_builtin(name, args=args.strip() or None, context=context)


def run_script(
    script_path: Path,
    context: Optional[ExecutionContext] = None,
    out: Optional[TextIO] = None,
) -> None:
    """Run commands from a script file, stopping at the first error.

    Args:
        script_path: Path to script file
        context: Optional execution context
        out: Where results are printed (defaults to the current sys.stdout)
    """
    if context is None:
        context = ExecutionContext()
    if out is None:
        out = sys.stdout

    with open(script_path, encoding="utf-8") as f:
        for line_num, line in join_continued(f):
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            logger.debug(f"Executing line {line_num}: {line}")
            try:
                result = run_command(line, context)
            except Exception as e:
                logger.error(f"{script_path}:{line_num}: {e}")
                raise
            if result is not None:
                print_result(result, out)
