"""Parser for shell pipe syntax.

Parses commands like: cat access.log | grep GET | cut 7 ' ' | sort | uniq
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from typing import List

from shellkit.core.errors import ShellkitError

logger = logging.getLogger(__name__)


class ParseError(ShellkitError):
    """A pipeline line could not be parsed."""


@dataclass
class Command:
    """Represents a single command in the pipe chain."""

    name: str
    args: List[str]
    # Argument text as typed, quotes intact
    text: str = ""

    def __repr__(self) -> str:
        """String representation."""
        args_str = ', '.join(repr(a) for a in self.args)
        return f"Command({self.name!r}, [{args_str}])"


class PipelineParser:
    """Parser for pipe-based command syntax.

    Converts shell syntax like:
        cat data.csv | cut 2 , | sort | uniq

    To a list of Command objects that the interpreter maps onto Stream calls.
    Quotes are honoured both when splitting on ``|`` and when tokenising.
    """

    def parse(self, command_line: str) -> List[Command]:
        """Parse a command line into a list of commands.

        Args:
            command_line: Command line to parse (e.g., "cat f.txt | sort")

        Returns:
            List of Command objects

        Raises:
            ParseError: If parsing fails
        """
        parts = self._split_pipeline(command_line)

        commands = []
        for part in parts:
            cmd = self._parse_command(part.strip())
            commands.append(cmd)

        logger.debug(f"Parsed {len(commands)} commands from {command_line!r}")
        return commands

    def _split_pipeline(self, command_line: str) -> List[str]:
        """Split command line by pipes, respecting quotes.

        Args:
            command_line: Command line to split

        Returns:
            List of command parts
        """
        parts = []
        current = []
        in_quotes = False
        quote_char = None

        for char in command_line:
            if char in ('"', "'") and not in_quotes:
                in_quotes = True
                quote_char = char
                current.append(char)
            elif char == quote_char and in_quotes:
                in_quotes = False
                quote_char = None
                current.append(char)
            elif char == '|' and not in_quotes:
                parts.append(''.join(current))
                current = []
            else:
                current.append(char)

        if current:
            parts.append(''.join(current))

        return parts

    def _parse_command(self, command_str: str) -> Command:
        """Parse a single command into Command object.

        Args:
            command_str: Command string (e.g., "cut 2 ,")

        Returns:
            Command object
        """
        try:
            tokens = shlex.split(command_str)
        except ValueError as e:
            raise ParseError(f"Failed to parse command: {command_str}") from e

        if not tokens:
            raise ParseError("Empty command")

        parts = command_str.strip().split(None, 1)
        text = parts[1].strip() if len(parts) > 1 else ""
        return Command(name=tokens[0], args=tokens[1:], text=text)

    def to_python_code(self, commands: List[Command]) -> str:
        """Convert command list to the equivalent Stream call chain.

        Args:
            commands: List of Command objects

        Returns:
            Python code as string

        Example:
            >>> parser = PipelineParser()
            >>> commands = parser.parse("cat f.txt | grep x | head 2")
            >>> print(parser.to_python_code(commands))
            Stream.from_files(['f.txt']).grep('x').head(2)
        """
        from shellkit.shell.interpreter import SOURCES, STAGES

        if not commands:
            return ""

        parts = []
        for i, cmd in enumerate(commands):
            table = SOURCES if i == 0 else STAGES
            spec = table.get(cmd.name)
            if spec is None:
                raise ParseError(f"Unknown command: {cmd.name}")
            args = spec.convert(cmd.name, cmd.args, cmd.text)
            params = ', '.join(repr(arg) for arg in args)
            if i == 0:
                parts.append(f"Stream.{spec.method}({params})")
            else:
                parts.append(f"{spec.method}({params})")

        return '.'.join(parts)


def parse_pipeline(command_line: str) -> List[Command]:
    """Parse a pipeline command line.

    Convenience function that creates a parser and parses the command.

    Args:
        command_line: Command line to parse

    Returns:
        List of Command objects
    """
    parser = PipelineParser()
    return parser.parse(command_line)
