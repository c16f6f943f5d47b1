"""shellkit - bash-flavored scripting runtime for Python.

Brings the parts of bash that scripts lean on into Python code:

- a variable context with ``$VAR`` / ``${VAR}`` expansion and array helpers
- chainable line pipelines (grep, cut, sed, sort, uniq, head, tail, ...)
- background jobs with blocking or deadline-bounded waits
- bash-style and YAML configuration loading
- command-table dispatch and an interactive pipeline shell
"""

__version__ = "0.3.0"
__license__ = "MIT"

from shellkit.core import (
    CmdResult,
    Context,
    JobRegistry,
    Stream,
    get_context,
    get_registry,
)
from shellkit.dispatch import Args, CommandTable, dispatch

__all__ = [
    "Args",
    "CmdResult",
    "CommandTable",
    "Context",
    "JobRegistry",
    "Stream",
    "dispatch",
    "get_context",
    "get_registry",
    "__version__",
]
