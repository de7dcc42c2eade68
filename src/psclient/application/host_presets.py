"""
Ready-made host configurations.

configure_console_host() prints host output with rich, configure_silent_host()
drops it. Both refuse interactive prompts.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from rich.console import Console
from rich.markup import escape

from psclient.application.session import PSSession
from psclient.domain.errors import HostInteractionError
from psclient.domain.host import HostCallbacks, OutputStream
from psclient.domain.records import ProgressRecord

logger = logging.getLogger(__name__)

IGNORED_PROGRESS_ACTIVITIES = {"Preparing modules for first use."}

STREAM_STYLES = {
    OutputStream.INFO: "white",
    OutputStream.ERROR: "red",
    OutputStream.WARNING: "yellow",
    OutputStream.VERBOSE: "cyan",
    OutputStream.DEBUG: "dim",
}


def stringify(obj: Any) -> str:
    """Render an object as indented JSON for logging; None is shown as [null]."""
    if obj is None:
        return "[null]"
    try:
        return json.dumps(obj, indent=2, default=_json_default, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(obj)


def _json_default(obj: Any) -> Any:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dict__"):
        return vars(obj)
    return str(obj)


def _refuse_prompt(caption: str, message: str, *_args) -> Any:
    raise HostInteractionError(f"Interactive prompt is not supported: {caption} {message}".strip())


def _refuse_read_line() -> str:
    raise HostInteractionError("Reading input is not supported")


def _default_choice(_caption: str, _message: str, _choices, default_choice: int) -> int:
    return default_choice


def configure_console_host(session: PSSession, console: Optional[Console] = None) -> bool:
    """
    Print host output to the console.

    Returns:
        False if the session is not open
    """
    if not session.is_open:
        return False

    console = console or Console()

    def write(stream: OutputStream, message: str) -> None:
        text = message.rstrip("\r\n")
        style = STREAM_STYLES.get(stream, "white")
        console.print(
            f"[{style}]\\[PowerShell-{stream.name.title()}] {escape(text)}[/{style}]",
            highlight=False,
        )

    def write_progress(source_id: int, record: ProgressRecord) -> None:
        if record.activity in IGNORED_PROGRESS_ACTIVITIES:
            return
        console.print(stringify(record), highlight=False, markup=False)

    session.set_callbacks(HostCallbacks(
        write=write,
        write_progress=write_progress,
        prompt=_refuse_prompt,
        prompt_for_choice=_default_choice,
        prompt_for_credential=_refuse_prompt,
        read_line=_refuse_read_line,
    ))
    return True


def configure_silent_host(session: PSSession) -> bool:
    """
    Swallow host output and progress.

    Returns:
        False if the session is not open
    """
    if not session.is_open:
        return False

    session.set_callbacks(HostCallbacks(
        write=lambda stream, message: None,
        write_progress=lambda source_id, record: None,
        prompt=_refuse_prompt,
        prompt_for_choice=_default_choice,
        prompt_for_credential=_refuse_prompt,
        read_line=_refuse_read_line,
    ))
    return True
