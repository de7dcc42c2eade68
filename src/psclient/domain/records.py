"""
Records produced by a running pipeline.

RemoteObject wraps a data item together with the remote type names,
ErrorRecord describes an item from the error channel and ProgressRecord
is what the host receives for progress updates.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class RemoteObject:
    """A data item as returned by the remote engine."""

    base_object: Any
    type_names: tuple[str, ...] = ()
    text: Optional[str] = None

    @property
    def type_name(self) -> str:
        return self.type_names[0] if self.type_names else ""

    @property
    def properties(self) -> dict[str, Any]:
        if isinstance(self.base_object, dict):
            return dict(self.base_object)
        return {}

    def __str__(self) -> str:
        if self.text is not None:
            return self.text
        return "" if self.base_object is None else str(self.base_object)


@dataclass(frozen=True)
class ErrorRecord:
    """An item read from the error channel."""

    message: str
    category: str = ""
    error_id: str = ""
    target: str = ""
    exception_type: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> ErrorRecord:
        """Build a record from a decoded JSON error payload."""
        if not isinstance(payload, dict):
            return cls(message=str(payload))
        return cls(
            message=str(payload.get("message") or ""),
            category=str(payload.get("category") or ""),
            error_id=str(payload.get("error_id") or ""),
            target=str(payload.get("target") or ""),
            exception_type=str(payload.get("exception") or ""),
        )

    def __str__(self) -> str:
        return self.message


class ProgressRecordType(Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"


@dataclass
class ProgressRecord:
    """Progress of a long running activity."""

    activity_id: int
    activity: str
    status_description: str
    percent_complete: int = -1
    seconds_remaining: int = -1
    record_type: ProgressRecordType = ProgressRecordType.PROCESSING
    current_operation: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "ActivityId": self.activity_id,
            "Activity": self.activity,
            "StatusDescription": self.status_description,
            "CurrentOperation": self.current_operation,
            "PercentComplete": self.percent_complete,
            "SecondsRemaining": self.seconds_remaining,
            "RecordType": self.record_type.value,
        }
