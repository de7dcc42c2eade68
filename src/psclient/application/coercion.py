"""
Result coercion.

Best-effort conversion of a value returned by PowerShell into the type the
caller asked for. coerce() never raises; a failed conversion is reported
through the second element of the returned tuple.
"""

from __future__ import annotations

import functools
import logging
import types
import typing
from typing import Any, Tuple

from pydantic import TypeAdapter

from psclient.domain.records import RemoteObject

logger = logging.getLogger(__name__)


class NoResult:
    """Marker result type: the caller does not want any values back."""


_NONE_TYPES = (type(None), None)


def _accepts_none(target: Any) -> bool:
    if target is object or target is Any or target in _NONE_TYPES:
        return True
    origin = typing.get_origin(target)
    if origin is typing.Union or origin is types.UnionType:
        return any(arg in _NONE_TYPES for arg in typing.get_args(target))
    return False


def _is_instance(value: Any, target: Any) -> bool:
    if target is Any:
        return True
    try:
        return isinstance(value, target)
    except TypeError:
        # parameterised generics (list[int], Literal[...]) are not instance targets
        return False


@functools.lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def _convert(value: Any, target: Any) -> Tuple[Any, bool]:
    try:
        adapter = _adapter(target)
    except TypeError:
        # unhashable target, build an adapter without caching
        try:
            adapter = TypeAdapter(target)
        except Exception:  # pylint: disable=broad-except
            return None, False
    except Exception:  # pylint: disable=broad-except
        return None, False

    try:
        return adapter.validate_python(value), True
    except Exception:  # pylint: disable=broad-except
        return None, False


def coerce(value: Any, target: Any) -> Tuple[Any, bool]:
    """
    Convert ``value`` to ``target``.

    Rules, in order:
        1. NoResult always succeeds with None.
        2. None succeeds only for targets that accept None.
        3. A value that already is an instance of the target is returned as-is.
        4. A RemoteObject is unwrapped once and retried from rule 3.
        5. Generic conversion (pydantic TypeAdapter).
        6. Generic conversion of str(value).

    Returns:
        Tuple of (converted value, success flag).
    """
    if target is NoResult:
        return None, True

    if value is None:
        return None, _accepts_none(target)

    if _is_instance(value, target):
        return value, True

    original = value
    if isinstance(value, RemoteObject):
        value = value.base_object
        if value is None and _accepts_none(target):
            return None, True
        if value is not None and _is_instance(value, target):
            return value, True

    if value is not None:
        result, ok = _convert(value, target)
        if ok:
            return result, True

    text = str(original)
    if text and (not isinstance(value, str) or text != value):
        result, ok = _convert(text, target)
        if ok:
            return result, True

    logger.debug("Could not coerce %s to %r", type(value).__name__, target)
    return None, False
