"""
Host binding for a session.

The remote engine talks back to the caller through the host UI: output
lines for the different streams, progress, prompts and read-line. Every
capability is an optional callback in HostCallbacks. Write requests without
a callback are only logged; interactive requests without a callback raise
HostNotImplementedError.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Sequence

from psclient.domain.errors import HostNotImplementedError
from psclient.domain.records import ProgressRecord

logger = logging.getLogger(__name__)


class OutputStream(Enum):
    """Host output streams."""

    INFO = 1
    ERROR = 2
    WARNING = 3
    VERBOSE = 4
    DEBUG = 5
    DEFAULT = 1  # alias of INFO


@dataclass
class HostCallbacks:
    """Optional callbacks backing the host UI capabilities."""

    write: Optional[Callable[[OutputStream, str], None]] = None
    write_progress: Optional[Callable[[int, ProgressRecord], None]] = None
    prompt: Optional[Callable[[str, str, Sequence[str]], Mapping[str, Any]]] = None
    prompt_for_choice: Optional[Callable[[str, str, Sequence[str], int], int]] = None
    prompt_for_credential: Optional[Callable[[str, str, str, str], Any]] = None
    read_line: Optional[Callable[[], str]] = None


class HostUI:
    """Capability surface the engine uses to reach the caller."""

    def __init__(self, callbacks: Optional[HostCallbacks] = None):
        self.callbacks = callbacks or HostCallbacks()

    def write(
        self,
        message: str,
        stream: OutputStream = OutputStream.DEFAULT,
        foreground: Optional[str] = None,
        background: Optional[str] = None,
    ) -> None:
        if foreground and background and foreground.lower() == background.lower() == "black":
            foreground = background = None

        if self.callbacks.write is None:
            logger.debug(
                "Host %s [%s/%s]: %s",
                stream.name, foreground or "-", background or "-", message.rstrip("\n"),
            )
            return
        self.callbacks.write(stream, message)

    def write_line(self, message: str = "") -> None:
        self.write(message + "\n", OutputStream.DEFAULT)

    def write_error_line(self, message: str) -> None:
        self.write(message + "\n", OutputStream.ERROR)

    def write_warning_line(self, message: str) -> None:
        self.write(message + "\n", OutputStream.WARNING)

    def write_verbose_line(self, message: str) -> None:
        self.write(message + "\n", OutputStream.VERBOSE)

    def write_debug_line(self, message: str) -> None:
        self.write(message + "\n", OutputStream.DEBUG)

    def write_progress(self, source_id: int, record: ProgressRecord) -> None:
        if self.callbacks.write_progress is None:
            logger.debug(
                "Progress %s: %s %s%%", source_id, record.activity, record.percent_complete
            )
            return
        self.callbacks.write_progress(source_id, record)

    def prompt(self, caption: str, message: str, fields: Sequence[str]) -> Mapping[str, Any]:
        if self.callbacks.prompt is None:
            raise HostNotImplementedError("The host does not support prompting.")
        return self.callbacks.prompt(caption, message, fields)

    def prompt_for_choice(
        self, caption: str, message: str, choices: Sequence[str], default_choice: int
    ) -> int:
        if self.callbacks.prompt_for_choice is None:
            raise HostNotImplementedError("The host does not support choice prompts.")
        return self.callbacks.prompt_for_choice(caption, message, choices, default_choice)

    def prompt_for_credential(
        self, caption: str, message: str, user_name: str = "", target_name: str = ""
    ) -> Any:
        if self.callbacks.prompt_for_credential is None:
            raise HostNotImplementedError("The host does not support credential prompts.")
        return self.callbacks.prompt_for_credential(caption, message, user_name, target_name)

    def read_line(self) -> str:
        if self.callbacks.read_line is None:
            raise HostNotImplementedError("The host does not support reading input.")
        return self.callbacks.read_line()


class Host:
    """Per-session host binding."""

    name = "psclient"

    def __init__(self, callbacks: Optional[HostCallbacks] = None):
        self.instance_id = uuid.uuid4()
        self.ui = HostUI(callbacks)
        self.should_exit_code: Optional[int] = None

    def set_should_exit(self, exit_code: int) -> None:
        """Record the exit code the engine reported for the last pipeline."""
        self.should_exit_code = exit_code
