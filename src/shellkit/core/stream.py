"""Line-oriented text pipelines in the style of Unix filters.

A Stream is an ordered list of lines. Stages (``grep``, ``cut``, ``sort`` ...)
return a new Stream and leave their input untouched, so calls chain:

    >>> Stream.from_string("b\\na\\nb\\nc").sort().uniq().to_list()
    ['a', 'b', 'c']

Sinks end a chain. ``to_string``, ``to_list``, ``to_file``,
``append_to_file`` and ``count`` return plain values. ``tee``, ``to_var``
and ``each`` have side effects but hand back a Stream so the chain can
continue.

Constructors that take a path or a command expand ``$VAR`` references
against the stream's Context before touching the file system or a shell.

Stages given malformed arguments (an empty delimiter, an invalid regex, a
negative count) log a warning and leave the stream unchanged, or match
nothing where they filter. Streams built with ``strict=True`` raise
StreamError instead.
"""

from __future__ import annotations

import itertools
import logging
import re
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from shellkit.core.context import Context, get_context
from shellkit.core.errors import CommandError, StreamError
from shellkit.core.process import CmdResult, run_cmd_with_status

logger = logging.getLogger(__name__)


def split_lines(text: str) -> List[str]:
    """Split text into lines on ``\\n``.

    A single trailing newline does not produce an empty last line and the
    empty string has no lines.
    """
    if not text:
        return []
    if text.endswith("\n"):
        text = text[:-1]
    return text.split("\n")


class Stream:
    """Ordered sequence of text lines with chainable transforms."""

    def __init__(
        self,
        lines: Optional[Iterable[str]] = None,
        context: Optional[Context] = None,
        strict: bool = False,
        shell: Optional[str] = None,
    ):
        """Initialize stream.

        Args:
            lines: Initial lines
            context: Context for expansion and ``to_var`` (defaults to the
                     process-wide context)
            strict: Raise StreamError on malformed stage arguments
            shell: Shell executable for command stages
        """
        self._lines: List[str] = list(lines) if lines is not None else []
        self._context = context
        self.strict = strict
        self.shell = shell

    @property
    def context(self) -> Context:
        return self._context if self._context is not None else get_context()

    def _derive(self, lines: Iterable[str]) -> Stream:
        return Stream(lines, context=self._context, strict=self.strict, shell=self.shell)

    def _malformed(self, stage: str, message: str) -> None:
        if self.strict:
            raise StreamError(f"{stage}: {message}")
        logger.warning(f"{stage}: {message}; stage skipped")

    # --- Constructors ---

    @classmethod
    def from_string(cls, content: str, **kwargs) -> Stream:
        """Create a stream from text, one line per ``\\n``-separated line."""
        return cls(split_lines(content), **kwargs)

    @classmethod
    def from_list(cls, lines: Sequence[str], **kwargs) -> Stream:
        """Create a stream from a list of lines."""
        return cls(list(lines), **kwargs)

    from_vec = from_list

    @classmethod
    def from_delimited_string(cls, content: str, delimiter: str, **kwargs) -> Stream:
        """Create a stream by splitting text on a delimiter.

        Args:
            content: Text to split
            delimiter: Separator; an empty delimiter yields a single line

        Returns:
            New stream
        """
        if not delimiter:
            return cls([content], **kwargs)
        return cls(content.split(delimiter), **kwargs)

    @classmethod
    def from_var(cls, name: str, **kwargs) -> Stream:
        """Create a stream from the value of a context variable."""
        stream = cls(**kwargs)
        stream._lines = split_lines(stream.context.get(name))
        return stream

    @classmethod
    def from_file(cls, path: str, **kwargs) -> Stream:
        """Create a stream from a file.

        Args:
            path: File path, expanded against the context
            **kwargs: Stream options (context, strict, shell)

        Returns:
            New stream; empty if the file cannot be read

        Raises:
            StreamError: If the file cannot be read and the stream is strict
        """
        return cls.from_files([path], **kwargs)

    @classmethod
    def from_files(cls, paths: Sequence[str], **kwargs) -> Stream:
        """Create a stream from several files, concatenated in order.

        Args:
            paths: File paths, each expanded against the context
            **kwargs: Stream options (context, strict, shell)

        Returns:
            New stream holding the lines of every readable file
        """
        stream = cls(**kwargs)
        lines: List[str] = []
        for path in paths:
            expanded = stream.context.expand(path)
            try:
                content = Path(expanded).read_text(encoding="utf-8", errors="replace")
            except OSError as e:
                if stream.strict:
                    raise StreamError(f"Cannot read {expanded}: {e}") from e
                logger.warning(f"Cannot read {expanded}: {e}")
                continue
            lines.extend(split_lines(content))
        stream._lines = lines
        return stream

    @classmethod
    def from_cmd(cls, command: str, **kwargs) -> Stream:
        """Create a stream from the stdout of a shell command.

        Args:
            command: Shell command, expanded against the context
            **kwargs: Stream options (context, strict, shell)

        Returns:
            New stream

        Raises:
            CommandError: If the command fails and the stream is strict
        """
        stream = cls(**kwargs)
        result = run_cmd_with_status(command, context=stream.context, shell=stream.shell)
        stream._lines = split_lines(stream._command_output(command, result))
        return stream

    def _command_output(self, command: str, result: CmdResult) -> str:
        if not result.ok:
            if self.strict:
                raise CommandError(
                    f"Command failed with status {result.status}: {command}",
                    result=result,
                )
            logger.warning(
                f"Command exited with status {result.status}: {command}: {result.error.strip()}"
            )
        return result.output

    # --- Stages ---

    def grep(self, pattern: str) -> Stream:
        """Keep lines containing pattern as a substring."""
        if not pattern:
            self._malformed("grep", "empty pattern")
            return self._derive(self._lines)
        return self._derive(line for line in self._lines if pattern in line)

    def grep_v(self, pattern: str) -> Stream:
        """Keep lines that do not contain pattern."""
        if not pattern:
            self._malformed("grep_v", "empty pattern")
            return self._derive(self._lines)
        return self._derive(line for line in self._lines if pattern not in line)

    def grep_regex(self, pattern: str) -> Stream:
        """Keep lines matching a regular expression anywhere in the line.

        An invalid pattern matches nothing.
        """
        if not pattern:
            self._malformed("grep_regex", "empty pattern")
            return self._derive(self._lines)
        try:
            regex = re.compile(pattern)
        except re.error as e:
            self._malformed("grep_regex", f"invalid pattern {pattern!r} ({e})")
            return self._derive([])
        return self._derive(line for line in self._lines if regex.search(line))

    def cut(self, field: int, delimiter: str) -> Stream:
        """Extract one field from each line.

        Args:
            field: 1-indexed field number
            delimiter: Field separator

        Returns:
            New stream; lines with fewer fields are dropped
        """
        if field < 1:
            self._malformed("cut", f"field must be >= 1, got {field}")
            return self._derive(self._lines)
        if not delimiter:
            self._malformed("cut", "empty delimiter")
            return self._derive(self._lines)
        result = []
        for line in self._lines:
            parts = line.split(delimiter)
            if len(parts) >= field:
                result.append(parts[field - 1])
        return self._derive(result)

    def sed(self, from_: str, to: str) -> Stream:
        """Replace every literal occurrence of ``from_`` with ``to`` on each line."""
        if not from_:
            self._malformed("sed", "empty search text")
            return self._derive(self._lines)
        return self._derive(line.replace(from_, to) for line in self._lines)

    def sed_block(self, start: str, end: str, replacement: str) -> Stream:
        """Rewrite blocks delimited by start and end markers.

        A block runs from a line containing ``start`` through the next line
        containing ``end``; the end marker may also follow the start marker on
        the same line. Inside a block every ``start`` becomes ``replacement``
        and every ``end`` is removed. A block whose end marker never appears
        is passed through unmodified.

        Args:
            start: Start marker
            end: End marker
            replacement: Text substituted for the start marker

        Returns:
            New stream
        """
        if not start or not end:
            self._malformed("sed_block", "empty start or end marker")
            return self._derive(self._lines)

        result: List[str] = []
        block: List[str] = []
        in_block = False

        for line in self._lines:
            if not in_block:
                idx = line.find(start)
                if idx == -1:
                    result.append(line)
                    continue
                in_block = True
                block = [line]
                closed = end in line[idx + len(start):]
            else:
                block.append(line)
                closed = end in line
            if closed:
                result.extend(
                    text.replace(start, replacement).replace(end, "") for text in block
                )
                block = []
                in_block = False

        if block:
            logger.debug(f"sed_block: no end marker {end!r}, block left unchanged")
            result.extend(block)
        return self._derive(result)

    def sed_lines(self, start: int, end: int) -> Stream:
        """Keep lines start through end (1-indexed, inclusive)."""
        if start < 1:
            self._malformed("sed_lines", f"start must be >= 1, got {start}")
            return self._derive(self._lines)
        return self._derive(self._lines[start - 1:max(end, start - 1)])

    def sed_around(self, pattern: str, context: int) -> Stream:
        """Keep lines containing pattern plus ``context`` lines on each side.

        Overlapping windows are merged, so no line appears twice.
        """
        if context < 0:
            self._malformed("sed_around", f"context must be >= 0, got {context}")
            return self._derive(self._lines)
        keep = set()
        for i, line in enumerate(self._lines):
            if pattern in line:
                keep.update(range(max(0, i - context), min(len(self._lines), i + context + 1)))
        return self._derive(line for i, line in enumerate(self._lines) if i in keep)

    def sed_insert(self, content: str, sentinel: str) -> Stream:
        """Replace a sentinel with (possibly multi-line) content.

        Args:
            content: Text to insert
            sentinel: Marker to replace

        Returns:
            New stream

        Raises:
            StreamError: If the sentinel does not occur in the stream
        """
        if not sentinel:
            self._malformed("sed_insert", "empty sentinel")
            return self._derive(self._lines)
        text = self.to_string()
        if sentinel not in text:
            raise StreamError(f"sed_insert: sentinel {sentinel!r} not found")
        return self._derive(split_lines(text.replace(sentinel, content)))

    def sed_template(self, content: str, sentinel: str) -> Stream:
        """Like ``sed_insert`` but a missing sentinel leaves the stream unchanged."""
        if not sentinel:
            self._malformed("sed_template", "empty sentinel")
            return self._derive(self._lines)
        return self._derive(split_lines(self.to_string().replace(sentinel, content)))

    def sort(self) -> Stream:
        """Sort lines lexicographically (stable)."""
        return self._derive(sorted(self._lines))

    def uniq(self) -> Stream:
        """Drop consecutive duplicate lines, like POSIX ``uniq``."""
        return self._derive(key for key, _ in itertools.groupby(self._lines))

    def unique(self) -> Stream:
        """Drop every repeated line, keeping the first occurrence."""
        return self._derive(dict.fromkeys(self._lines))

    def head(self, n: int) -> Stream:
        """Keep the first n lines."""
        if n < 0:
            self._malformed("head", f"count must be >= 0, got {n}")
            return self._derive(self._lines)
        return self._derive(self._lines[:n])

    def tail(self, n: int) -> Stream:
        """Keep the last n lines, order preserved."""
        if n < 0:
            self._malformed("tail", f"count must be >= 0, got {n}")
            return self._derive(self._lines)
        if n == 0:
            return self._derive([])
        return self._derive(self._lines[-n:])

    def filter(self, predicate: Callable[[str], bool]) -> Stream:
        return self._derive(line for line in self._lines if predicate(line))

    def map(self, mapper: Callable[[str], str]) -> Stream:
        return self._derive(mapper(line) for line in self._lines)

    def trim(self) -> Stream:
        return self._derive(line.strip() for line in self._lines)

    def upper(self) -> Stream:
        return self._derive(line.upper() for line in self._lines)

    def lower(self) -> Stream:
        return self._derive(line.lower() for line in self._lines)

    def reverse(self) -> Stream:
        """Reverse line order, like ``tac``."""
        return self._derive(reversed(self._lines))

    def pipe_to_cmd(self, command: str) -> Stream:
        """Feed the stream to a shell command and stream its stdout.

        Args:
            command: Shell command, expanded against the context

        Returns:
            New stream of the command's output

        Raises:
            CommandError: If the command fails and the stream is strict
        """
        result = run_cmd_with_status(
            command,
            context=self.context,
            shell=self.shell,
            stdin=self._file_text(),
        )
        return self._derive(split_lines(self._command_output(command, result)))

    # --- Sinks ---

    def _file_text(self) -> str:
        return self.to_string() + "\n" if self._lines else ""

    def to_string(self) -> str:
        """Join lines with ``\\n`` (no trailing newline)."""
        return "\n".join(self._lines)

    def to_list(self) -> List[str]:
        return list(self._lines)

    to_vec = to_list

    def to_file(self, path: str) -> None:
        """Write the stream to a file, replacing its contents.

        Args:
            path: File path, expanded against the context
        """
        expanded = self.context.expand(path)
        Path(expanded).write_text(self._file_text(), encoding="utf-8")
        logger.debug(f"Wrote {len(self._lines)} lines to {expanded}")

    def append_to_file(self, path: str) -> None:
        """Append the stream to a file, creating it if needed."""
        expanded = self.context.expand(path)
        with open(expanded, "a", encoding="utf-8") as f:
            f.write(self._file_text())

    def tee(self, path: str) -> Stream:
        """Write the stream to a file and continue the chain.

        Args:
            path: File path, expanded against the context

        Returns:
            A copy of this stream
        """
        self.to_file(path)
        return self._derive(self._lines)

    def to_var(self, name: str) -> Stream:
        """Store the joined stream in a context variable and continue the chain."""
        self.context.set(name, self.to_string())
        return self

    def each(self, action: Callable[[str], object]) -> Stream:
        """Call action for every line and continue the chain."""
        for line in self._lines:
            action(line)
        return self

    def count(self) -> int:
        return len(self._lines)

    def first(self) -> Optional[str]:
        return self._lines[0] if self._lines else None

    def last(self) -> Optional[str]:
        return self._lines[-1] if self._lines else None

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._lines))

    def __len__(self) -> int:
        return len(self._lines)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Stream):
            return self._lines == other._lines
        if isinstance(other, list):
            return self._lines == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"Stream({len(self._lines)} lines)"
