"""Variable store for the shell runtime.

The Context holds every variable as a string. Arrays follow the bash
convention used throughout shellkit: ``KEY`` is the space-joined value,
``KEY_LENGTH`` the element count and ``KEY_0`` .. ``KEY_{n-1}`` the elements.
Keeping these entries consistent is up to the caller.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from shellkit.core.expansion import expand as expand_text
from shellkit.core.expansion import var_default

logger = logging.getLogger(__name__)

MODE_FLAGS = {
    "DEBUG": "DEBUG_MODE",
    "DEV": "DEV_MODE",
    "QUIET": "QUIET_MODE",
    "TRACE": "TRACE_MODE",
}


@dataclass(frozen=True)
class CallFrame:
    """One handler invocation on the call stack."""

    function: str
    args: Tuple[str, ...]
    timestamp: float
    snapshot: Mapping[str, str] = field(repr=False)

    def elapsed_ms(self) -> int:
        """Milliseconds since the frame was pushed."""
        return int((time.time() - self.timestamp) * 1000)


class Context:
    """Thread-safe key/value store with shell-style expansion.

    A single lock guards reads and writes. It is held only long enough to
    touch the dictionary; expansion works on a copy taken under the lock.
    """

    def __init__(self, variables: Optional[Mapping[str, str]] = None):
        """Initialize context.

        Args:
            variables: Optional initial variables
        """
        self._lock = Lock()
        self._vars: Dict[str, str] = {}
        self._functions: Dict[str, str] = {}
        self._call_stack: List[CallFrame] = []
        if variables:
            for key, value in variables.items():
                self._vars[str(key)] = str(value)

    def set(self, key: str, value: str) -> None:
        """Set a variable, replacing any previous value."""
        with self._lock:
            self._vars[key] = str(value)

    def get(self, key: str) -> str:
        """Get a variable, or the empty string if it is not set."""
        with self._lock:
            return self._vars.get(key, "")

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._vars

    def unset(self, key: str) -> None:
        with self._lock:
            self._vars.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        """Get a copy of all variables.

        Returns:
            Dictionary detached from the store
        """
        with self._lock:
            return dict(self._vars)

    def expand(self, text: str) -> str:
        """Expand ``${name}`` and ``$name`` references in text.

        Args:
            text: Template text

        Returns:
            Expanded text; unknown names become empty strings
        """
        return expand_text(self.snapshot(), text)

    def param(self, key: str, default: Optional[str] = None) -> str:
        """Get a variable with a ``${key:-default}`` fallback."""
        value = self.get(key)
        if default is None:
            return value
        return var_default(value, default)

    # --- Arrays ---

    def set_array(self, key: str, items: Sequence[str]) -> None:
        """Store items as an array.

        Args:
            key: Array name
            items: Array elements
        """
        items = [str(item) for item in items]
        with self._lock:
            self._vars[f"{key}_LENGTH"] = str(len(items))
            for i, item in enumerate(items):
                self._vars[f"{key}_{i}"] = item
            self._vars[key] = " ".join(items)

    def get_array(self, key: str) -> List[str]:
        """Read an array.

        Without a ``KEY_LENGTH`` entry the plain value is split on
        whitespace. Missing indexed entries are skipped.

        Args:
            key: Array name

        Returns:
            Array elements
        """
        with self._lock:
            length_key = f"{key}_LENGTH"
            if length_key not in self._vars:
                return self._vars.get(key, "").split()
            try:
                length = int(self._vars[length_key])
            except ValueError:
                length = 0
            items = []
            for i in range(length):
                item_key = f"{key}_{i}"
                if item_key in self._vars:
                    items.append(self._vars[item_key])
            return items

    def push_array(self, key: str, item: str) -> None:
        """Append one element to an array."""
        items = self.get_array(key)
        items.append(item)
        self.set_array(key, items)

    # --- Function registry and call stack ---

    def register_function(self, name: str, description: str) -> None:
        with self._lock:
            self._functions[name] = description

    def list_functions(self) -> List[Tuple[str, str]]:
        """List registered functions sorted by name."""
        with self._lock:
            return sorted(self._functions.items())

    def push_call(self, function: str, args: Sequence[str] = ()) -> CallFrame:
        """Push a call frame holding a snapshot of the current variables.

        Args:
            function: Handler name
            args: Handler arguments

        Returns:
            The pushed frame
        """
        with self._lock:
            frame = CallFrame(
                function=function,
                args=tuple(args),
                timestamp=time.time(),
                snapshot=MappingProxyType(dict(self._vars)),
            )
            self._call_stack.append(frame)
        logger.debug(f"Pushed call frame: {function}")
        return frame

    def pop_call(self) -> Optional[CallFrame]:
        """Pop the most recent call frame, or None if the stack is empty."""
        with self._lock:
            if not self._call_stack:
                return None
            return self._call_stack.pop()

    def call_stack(self) -> List[CallFrame]:
        """Get the call stack, oldest frame first."""
        with self._lock:
            return list(self._call_stack)

    # --- Bootstrap ---

    def bootstrap(
        self,
        argv: Sequence[str],
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Load the process environment and standard runtime variables.

        Args:
            argv: Process arguments; ``argv[0]`` is the script path
            environ: Environment to load (defaults to ``os.environ``)
        """
        environ = os.environ if environ is None else environ
        for key, value in environ.items():
            self.set(key, value)

        home = self.get("HOME") or str(Path.home())
        xdg_defaults = {
            "XDG_CONFIG_HOME": f"{home}/.config",
            "XDG_CACHE_HOME": f"{home}/.cache",
            "XDG_DATA_HOME": f"{home}/.local/share",
        }
        for key, default in xdg_defaults.items():
            if not self.get(key):
                self.set(key, default)

        for env_name, mode in MODE_FLAGS.items():
            if env_name in environ:
                self.set(mode, "true")

        script_path = argv[0] if argv else "shellkit"
        path = Path(script_path)
        self.set("SCRIPT_NAME", path.name or "script")
        self.set("SCRIPT_PATH", script_path)
        self.set("SCRIPT_DIR", str(path.parent) if str(path.parent) else ".")
        logger.debug(f"Bootstrapped context for {script_path}")

    def __len__(self) -> int:
        with self._lock:
            return len(self._vars)

    def __repr__(self) -> str:
        return f"Context({len(self)} variables)"


_context: Optional[Context] = None


def get_context() -> Context:
    """Get or create the process-wide default context.

    Returns:
        Default context
    """
    global _context
    if _context is None:
        _context = Context()
    return _context


def reset_context() -> Context:
    """Replace the process-wide default context with an empty one.

    Returns:
        The new default context
    """
    global _context
    _context = Context()
    return _context
