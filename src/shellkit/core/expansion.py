"""Shell-style variable expansion.

Expansion runs two passes over a template against one snapshot of the
variables:

1. every ``${name}`` is resolved,
2. every bare ``$name`` left in the template text is resolved.

Values inserted by either pass are never scanned again, so a value that
itself contains ``$`` comes through verbatim. Unknown names expand to the
empty string and anything that does not form a valid token (``${`` without a
closing brace, ``${1x}``, a lone ``$``) is left as literal text.
"""

from __future__ import annotations

import fnmatch
import re
from typing import List, Mapping, Optional, Tuple

BRACED_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
BARE_PATTERN = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")

# (text, is_literal) pairs; only literal segments are scanned by later passes
_Segment = Tuple[str, bool]


def _substitute(
    segments: List[_Segment],
    pattern: re.Pattern,
    variables: Mapping[str, str],
) -> List[_Segment]:
    """Run one substitution pass over the literal segments."""
    result: List[_Segment] = []
    for text, literal in segments:
        if not literal or '$' not in text:
            result.append((text, literal))
            continue
        pos = 0
        for match in pattern.finditer(text):
            if match.start() > pos:
                result.append((text[pos:match.start()], True))
            result.append((variables.get(match.group(1), ""), False))
            pos = match.end()
        if pos < len(text):
            result.append((text[pos:], True))
    return result


def expand(variables: Mapping[str, str], text: str) -> str:
    """Expand ``${name}`` and ``$name`` tokens in text.

    Args:
        variables: Variable snapshot to resolve names against
        text: Template text

    Returns:
        Expanded text. Never raises for malformed templates.

    Example:
        >>> expand({"NAME": "world"}, "hello ${NAME}, hello $NAME")
        'hello world, hello world'
    """
    if '$' not in text:
        return text
    segments: List[_Segment] = [(text, True)]
    segments = _substitute(segments, BRACED_PATTERN, variables)
    segments = _substitute(segments, BARE_PATTERN, variables)
    return ''.join(part for part, _ in segments)


# Parameter expansion helpers, mirroring bash ${var...} operators.

def var_default(value: str, default: str) -> str:
    """``${var:-default}``"""
    return value if value else default


def var_alternate(value: str, alternate: str) -> str:
    """``${var:+alternate}``"""
    return alternate if value else ""


def var_substring(value: str, offset: int, length: Optional[int] = None) -> str:
    """``${var:offset:length}``"""
    if offset < 0:
        offset = max(0, len(value) + offset)
    if length is None:
        return value[offset:]
    if length < 0:
        return ""
    return value[offset:offset + length]


def var_trim_prefix(value: str, pattern: str, longest: bool = False) -> str:
    """``${var#pattern}`` and ``${var##pattern}`` with glob patterns.

    Args:
        value: Variable value
        pattern: Glob pattern matched against prefixes
        longest: Remove the longest match (``##``) instead of the shortest

    Returns:
        Value with the matching prefix removed, unchanged if nothing matches
    """
    indices = range(len(value), -1, -1) if longest else range(len(value) + 1)
    for i in indices:
        if fnmatch.fnmatchcase(value[:i], pattern):
            return value[i:]
    return value


def var_trim_suffix(value: str, pattern: str, longest: bool = False) -> str:
    """``${var%pattern}`` and ``${var%%pattern}`` with glob patterns.

    Args:
        value: Variable value
        pattern: Glob pattern matched against suffixes
        longest: Remove the longest match (``%%``) instead of the shortest

    Returns:
        Value with the matching suffix removed, unchanged if nothing matches
    """
    indices = range(len(value) + 1) if longest else range(len(value), -1, -1)
    for i in indices:
        if fnmatch.fnmatchcase(value[i:], pattern):
            return value[:i]
    return value


def var_replace(value: str, pattern: str, replacement: str, replace_all: bool = False) -> str:
    """``${var/pattern/repl}`` and ``${var//pattern/repl}`` (literal match)."""
    if not pattern:
        return value
    return value.replace(pattern, replacement, -1 if replace_all else 1)


def var_case_upper(value: str, replace_all: bool = True) -> str:
    """``${var^^}`` or, with ``replace_all=False``, ``${var^}``."""
    if replace_all:
        return value.upper()
    return value[:1].upper() + value[1:]


def var_case_lower(value: str, replace_all: bool = True) -> str:
    """``${var,,}`` or, with ``replace_all=False``, ``${var,}``."""
    if replace_all:
        return value.lower()
    return value[:1].lower() + value[1:]
