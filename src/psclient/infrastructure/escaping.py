"""
PowerShell literal escaping.

Turns Python values into script text that PowerShell parses back into the
same value. Strings become expandable double-quoted literals with every
special character escaped by a backtick.

See about_Special_Characters and about_Quoting_Rules in the PowerShell docs.
"""

from __future__ import annotations

import base64
import math
import os
from typing import Any, Mapping, Optional

_CONTROL_CHARACTERS = {
    "\0": "`0",
    "\a": "`a",
    "\b": "`b",
    "\t": "`t",
    "\n": "`n",
    "\v": "`v",
    "\f": "`f",
    "\r": "`r",
}

# PowerShell accepts the typographic double quotes as string delimiters too
_DOUBLE_QUOTES = {'"', "“", "”", "„"}

_TICK_PREFIXED = {"`", "{", "}", "$"}


def _escape_partial(value: str, escape_double_quotes: bool, bracket_escape_ticks: int) -> str:
    parts = []
    for char in value:
        if char in _CONTROL_CHARACTERS:
            parts.append(_CONTROL_CHARACTERS[char])
        elif escape_double_quotes and char in _DOUBLE_QUOTES:
            parts.append(char * 2)
        elif char in "[]":
            parts.append("`" * bracket_escape_ticks + char)
        else:
            if char in _TICK_PREFIXED:
                parts.append("`")
            parts.append(char)
    return "".join(parts)


def escape_string(value: Optional[str], bracket_escape_ticks: int = 0) -> str:
    """
    Escape a raw string into a double-quoted PowerShell literal.

    Args:
        value: Raw string, or None for $null.
        bracket_escape_ticks: Backticks placed before '[' and ']'. Wildcard
            parameters (-Path, -Filter) need one tick to match brackets literally.

    Returns:
        Script text including the surrounding quotes.
    """
    if value is None:
        return "$null"
    return '"' + _escape_partial(value, True, bracket_escape_ticks) + '"'


def escape_variable_name(name: Optional[str]) -> str:
    """Escape a variable name into the braced ${...} form (dollar sign included)."""
    if name is None:
        return "$null"
    return "${" + _escape_partial(name, False, 0) + "}"


def render_value(value: Any) -> str:
    """
    Render a Python value as a PowerShell expression.

    Supports None, bool, int, float, str, path-like, bytes, sequences and
    mappings (nested). Anything else is rendered through str().
    """
    if value is None:
        return "$null"
    if isinstance(value, bool):
        return "$true" if value else "$false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value):
            return "[double]::NaN"
        if math.isinf(value):
            return "[double]::PositiveInfinity" if value > 0 else "[double]::NegativeInfinity"
        return repr(value)
    if isinstance(value, (str, os.PathLike)):
        return escape_string(os.fspath(value))
    if isinstance(value, (bytes, bytearray, memoryview)):
        encoded = base64.b64encode(bytes(value)).decode("ascii")
        return f'([Convert]::FromBase64String("{encoded}"))'
    if isinstance(value, Mapping):
        items = "; ".join(
            f"{escape_string(str(k))} = {render_value(v)}" for k, v in value.items()
        )
        return "@{" + items + "}"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "@(" + ", ".join(render_value(v) for v in value) + ")"
    return escape_string(str(value))
