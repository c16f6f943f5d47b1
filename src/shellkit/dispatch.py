"""Command table dispatch for shellkit applications.

An application builds a CommandTable mapping command names to handlers and
calls ``dispatch(table, sys.argv)``. Each handler receives an Args object
for the arguments after the command name and returns an exit code; dispatch
returns that code rather than exiting, so callers decide what to do with it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Set

from shellkit.core.context import Context, get_context

logger = logging.getLogger(__name__)

BUILTIN_COMMANDS = {
    "help": "Show this help",
    "inspect": "List all available functions",
    "stack": "Show current call stack",
}


class Args:
    """Accessor over a handler's arguments.

    Positional lookups skip arguments that flag and key/value accessors have
    already consumed.
    """

    def __init__(self, args: Sequence[str], context: Optional[Context] = None):
        """Initialize arguments.

        Args:
            args: Raw argument strings
            context: Context used by ``expand``
        """
        self._args: List[str] = list(args)
        self._processed: Set[int] = set()
        self._context = context

    def get(self, n: int) -> str:
        """Get the nth remaining argument (1-indexed), or an empty string."""
        remaining = self.remaining()
        if n < 1 or n > len(remaining):
            return ""
        return remaining[n - 1]

    def get_or(self, n: int, default: str) -> str:
        return self.get(n) or default

    def has(self, flag: str) -> bool:
        return flag in self._args

    def has_pop(self, flag: str) -> bool:
        """Check for a flag and mark it consumed."""
        for i, arg in enumerate(self._args):
            if arg == flag and i not in self._processed:
                self._processed.add(i)
                return True
        return False

    def has_val(self, flag: str) -> Optional[str]:
        """Consume ``--flag=value`` or ``--flag value`` and return the value.

        Args:
            flag: Flag name including dashes

        Returns:
            Flag value, or None if the flag is absent
        """
        prefix = f"{flag}="
        for i, arg in enumerate(self._args):
            if i not in self._processed and arg.startswith(prefix):
                self._processed.add(i)
                return arg[len(prefix):]
        for i, arg in enumerate(self._args):
            if i not in self._processed and arg == flag and i + 1 < len(self._args):
                self._processed.update((i, i + 1))
                return self._args[i + 1]
        return None

    def get_kv(self, key: str) -> Optional[str]:
        """Consume a ``key=value`` or ``key:value`` argument and return the value."""
        for i, arg in enumerate(self._args):
            if i in self._processed:
                continue
            for sep in ("=", ":"):
                if arg.startswith(f"{key}{sep}"):
                    self._processed.add(i)
                    return arg[len(key) + 1:]
        return None

    def get_array(self, key: str) -> Optional[List[str]]:
        """Consume ``key=a,b,c`` and return the comma-separated items."""
        value = self.get_kv(key)
        if value is None:
            return None
        return [item.strip() for item in value.split(",")]

    def remaining(self) -> List[str]:
        return [arg for i, arg in enumerate(self._args) if i not in self._processed]

    def all(self) -> List[str]:
        return list(self._args)

    def join(self, sep: str = " ") -> str:
        return sep.join(self.remaining())

    def __len__(self) -> int:
        return len(self.remaining())

    def expand(self, template: str) -> str:
        """Substitute ``$1``..``$n``, ``$@`` and ``$#``, then context variables.

        Args:
            template: Template text

        Returns:
            Expanded text
        """
        remaining = self.remaining()
        result = template
        # Highest index first so $1 does not clobber the prefix of $10
        for i in range(len(remaining), 0, -1):
            result = result.replace(f"${i}", remaining[i - 1])
        result = result.replace("$@", self.join(" "))
        result = result.replace("$#", str(len(remaining)))
        context = self._context if self._context is not None else get_context()
        return context.expand(result)

    def __repr__(self) -> str:
        return f"Args({self._args!r})"


Handler = Callable[[Args], int]


@dataclass
class CommandSpec:
    """A registered command."""

    name: str
    handler: Handler
    description: str


class CommandTable:
    """Explicit map of command names to handlers."""

    def __init__(self, title: str = "shellkit"):
        """Initialize command table.

        Args:
            title: Application name shown in help output
        """
        self.title = title
        self.commands: Dict[str, CommandSpec] = {}

    def add(self, name: str, handler: Handler, description: str = "") -> None:
        """Register a handler.

        Args:
            name: Command name
            handler: Function taking Args and returning an exit code
            description: Help text (defaults to the handler's name)
        """
        if name in BUILTIN_COMMANDS:
            raise ValueError(f"'{name}' is a built-in command")
        self.commands[name] = CommandSpec(name, handler, description or handler.__name__)
        logger.debug(f"Registered command: {name}")

    def register(self, name: str, description: str = "") -> Callable[[Handler], Handler]:
        """Decorator to register a handler.

        Args:
            name: Command name
            description: Help text

        Returns:
            Decorator function
        """
        def decorator(func: Handler) -> Handler:
            self.add(name, func, description)
            return func
        return decorator

    def get(self, name: str) -> Optional[CommandSpec]:
        return self.commands.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self.commands

    def help_text(self) -> str:
        """Render the help listing."""
        lines = [f"{self.title} - available commands:", ""]
        for spec in sorted(self.commands.values(), key=lambda s: s.name):
            lines.append(f"  {spec.name:<15} {spec.description}")
        lines.extend(["", "Built-in commands:"])
        for name, description in BUILTIN_COMMANDS.items():
            lines.append(f"  {name:<15} {description}")
        return "\n".join(lines)


def format_functions(context: Context) -> str:
    functions = context.list_functions()
    if not functions:
        return "No functions registered"
    lines = ["Available functions:"]
    for name, description in functions:
        lines.append(f"  {name:<20} {description}")
    return "\n".join(lines)


def format_call_stack(context: Context) -> str:
    """Render the call stack, most recent frame first."""
    stack = context.call_stack()
    if not stack:
        return "Call stack is empty"
    lines = ["Call stack (most recent first):"]
    for i, frame in enumerate(reversed(stack)):
        lines.append(f"  {i}: {frame.function} {' '.join(frame.args)} ({frame.elapsed_ms()}ms)")
    return "\n".join(lines)


def _run_handler(spec: CommandSpec, args: Sequence[str], context: Context) -> int:
    context.push_call(spec.name, args)
    try:
        result = spec.handler(Args(args, context=context))
    finally:
        context.pop_call()
    return int(result or 0)


def dispatch(
    table: CommandTable,
    argv: Sequence[str],
    context: Optional[Context] = None,
    output: Callable[[str], None] = print,
) -> int:
    """Route ``argv[1]`` to its handler.

    Args:
        table: Command table
        argv: Full argument vector; ``argv[0]`` is the program name
        context: Context for call frames and the function registry
        output: Sink for help, inspect and stack output

    Returns:
        Exit code of the handler, 0 for built-ins, 1 for unknown commands
    """
    if context is None:
        context = get_context()
    command = argv[1] if len(argv) > 1 else "help"
    args = list(argv[2:])

    for spec in table.commands.values():
        context.register_function(spec.name, spec.description)

    spec = table.get(command)
    if spec is not None:
        return _run_handler(spec, args, context)
    if command in ("help", "--help", "-h"):
        output(table.help_text())
        return 0
    if command == "inspect":
        output(format_functions(context))
        return 0
    if command == "stack":
        output(format_call_stack(context))
        return 0

    logger.error(f"Unknown command: {command}")
    output(table.help_text())
    return 1


def pre_dispatch(
    table: CommandTable,
    argv: Sequence[str],
    context: Optional[Context] = None,
) -> Optional[int]:
    """Run ``argv[1]`` if the table has it.

    Args:
        table: Command table of early commands
        argv: Full argument vector
        context: Context for call frames

    Returns:
        Handler exit code, or None if the command is not in the table
    """
    if context is None:
        context = get_context()
    command = argv[1] if len(argv) > 1 else ""
    spec = table.get(command)
    if spec is None:
        return None
    return _run_handler(spec, list(argv[2:]), context)
