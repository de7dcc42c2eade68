"""
Exception taxonomy for psclient.

Every error raised by the library derives from PSClientError. Pipeline
failures are ExecutionError subclasses: one cause is raised as-is, several
causes are raised as an AggregateExecutionError that keeps every cause in
order.
"""

from __future__ import annotations

from typing import Any, Iterable


class PSClientError(Exception):
    """Base class for all psclient errors."""


class InvalidConnectionError(PSClientError, ValueError):
    """Raised when a session is opened without a usable connection descriptor."""


class NotConnectedError(PSClientError, RuntimeError):
    """Raised when a command is invoked on a session that is not open."""


class EmptyRequestError(PSClientError, ValueError):
    """Raised when an invocation contains no commands."""


class TransportError(PSClientError):
    """Raised when the underlying execution channel cannot be opened or used."""


class ExecutionError(PSClientError):
    """Base class for failures reported by a pipeline invocation."""


class RemoteExecutionError(ExecutionError):
    """A single failure reported by the remote engine."""

    def __init__(self, message: str, record: Any = None):
        super().__init__(message)
        self.record = record


class UnspecifiedExecutionError(ExecutionError):
    """The pipeline failed but reported no cause."""

    def __init__(self, message: str = "Unspecified Error"):
        super().__init__(message)


class AggregateExecutionError(ExecutionError):
    """
    Several failures raised together.

    Nested aggregates are flattened on construction; duplicates are kept and
    the original order is preserved.
    """

    def __init__(self, message: str, causes: Iterable[BaseException] = ()):
        super().__init__(message)
        self.causes: list[BaseException] = list(_flatten(causes))

    def __str__(self) -> str:
        base = super().__str__()
        if not self.causes:
            return base
        details = "; ".join(str(c) for c in self.causes)
        return f"{base} ({details})"


class TransferVerificationError(PSClientError):
    """Raised when a file written remotely does not match the expected contents."""


class OperationCancelledError(PSClientError):
    """Raised when a cancellable operation observes its cancellation token."""


class HostNotImplementedError(PSClientError, NotImplementedError):
    """Raised when the remote side needs a host capability that has no callback."""


class HostInteractionError(PSClientError):
    """Raised by host presets that refuse interactive requests."""


def _flatten(causes: Iterable[BaseException]):
    for cause in causes:
        if isinstance(cause, AggregateExecutionError) and cause.causes:
            yield from _flatten(cause.causes)
        else:
            yield cause


def get_single_exception(obj: Any) -> BaseException:
    """
    Convert an error-like object into one exception.

    Args:
        obj: None, an exception, a string, or a sequence of those.

    Returns:
        The exception itself, the only cause of a one-cause aggregate,
        a RemoteExecutionError built from text, or an aggregate of the
        flattened causes.
    """
    if obj is None:
        return UnspecifiedExecutionError()

    if isinstance(obj, AggregateExecutionError):
        if len(obj.causes) == 1:
            return get_single_exception(obj.causes[0])
        return obj

    if isinstance(obj, BaseException):
        return obj

    if isinstance(obj, str):
        return RemoteExecutionError(obj) if obj else UnspecifiedExecutionError()

    items = list(obj)
    if not items:
        return UnspecifiedExecutionError()

    if all(isinstance(i, str) for i in items):
        return RemoteExecutionError("\n".join(items))

    causes = get_all_exceptions(items)
    if len(causes) == 1:
        return causes[0]
    return AggregateExecutionError("One or more errors occurred.", causes)


def get_all_exceptions(obj: Any) -> list[BaseException]:
    """Flatten an error-like object into a list of individual exceptions."""
    if obj is None:
        return [UnspecifiedExecutionError()]

    if isinstance(obj, AggregateExecutionError):
        if not obj.causes:
            return [obj]
        result: list[BaseException] = []
        for cause in obj.causes:
            result.extend(get_all_exceptions(cause))
        return result

    if isinstance(obj, (BaseException, str)):
        return [get_single_exception(obj)]

    items = list(obj)
    if not items:
        return [UnspecifiedExecutionError()]

    if all(isinstance(i, str) for i in items):
        return [RemoteExecutionError("\n".join(items))]

    result = []
    for item in items:
        result.extend(get_all_exceptions(item))
    return result
