"""Shell module for the interactive pipeline CLI.

Provides a pipe-syntax shell over Stream, with a REPL, script runner and
dot-prefixed built-in commands for variables and background jobs.
"""

from __future__ import annotations

from shellkit.shell.builtins import execute_builtin, is_builtin
from shellkit.shell.interpreter import (
    ExecutionContext,
    ShellError,
    ShellInterpreter,
    get_execution_context,
    reset_execution_context,
)
from shellkit.shell.parser import ParseError, PipelineParser, parse_pipeline
from shellkit.shell.repl import REPL, print_result, run_command, run_repl, run_script

__all__ = [
    "REPL",
    "PipelineParser",
    "ParseError",
    "ExecutionContext",
    "ShellError",
    "ShellInterpreter",
    "run_repl",
    "run_command",
    "run_script",
    "print_result",
    "parse_pipeline",
    "get_execution_context",
    "reset_execution_context",
    "is_builtin",
    "execute_builtin",
]
