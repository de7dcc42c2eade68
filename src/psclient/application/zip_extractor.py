"""
Zip extraction onto the remote file system.

Entries are read into memory one at a time and written through
RemoteFileSystem.put_file, so files that are already present with the same
contents are not transferred again. Progress is reported to the session host.
"""

from __future__ import annotations

import asyncio
import logging
import re
import secrets
import threading
import time
import zipfile
from typing import Optional

from psclient.application.file_system import RemoteFileSystem
from psclient.domain.errors import OperationCancelledError
from psclient.domain.records import ProgressRecord, ProgressRecordType

logger = logging.getLogger(__name__)

_DRIVE_PATTERN = re.compile(r"^[A-Za-z]:")
_ENTRY_SEPARATORS = re.compile(r"[\\/]")


def _separator_for(path: str) -> str:
    if "\\" in path or _DRIVE_PATTERN.match(path):
        return "\\"
    return "/"


def normalize_output_path(path: str) -> str:
    """Return ``path`` ending in exactly one separator of its own kind."""
    separator = _separator_for(path)
    if separator == "\\":
        path = path.replace("/", "\\")
    return path.rstrip("\\/") + separator


def entry_target(output_path: str, entry_name: str) -> str:
    """
    Map an archive entry name onto a path under ``output_path``.

    Leading separators and "." segments are dropped. Names with ".." segments
    or a drive prefix would land outside the output directory and are rejected.

    Raises:
        ValueError: If the entry cannot be placed under output_path
    """
    separator = output_path[-1]
    parts = [p for p in _ENTRY_SEPARATORS.split(entry_name) if p not in ("", ".")]
    if not parts or ".." in parts or _DRIVE_PATTERN.match(parts[0]):
        raise ValueError(f"Archive entry {entry_name!r} is outside the output directory")
    return output_path + separator.join(parts)


class ZipExtractor:
    """Extracts zip archives to a remote directory."""

    def __init__(self, file_system: RemoteFileSystem):
        self.file_system = file_system

    def _cancel_check(self, cancel_event: Optional[threading.Event]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelledError("Extraction was cancelled")

    def extract_to(
        self,
        archive: zipfile.ZipFile,
        output_path: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        """
        Extract every entry of ``archive`` under ``output_path``.

        Cancellation is checked before each entry. Entries extracted before
        cancellation are left in place.

        Raises:
            OperationCancelledError: If cancel_event is set
            ValueError: If an entry name points outside output_path; nothing
                is extracted then
        """
        self._cancel_check(cancel_event)

        output_path = normalize_output_path(output_path)
        session = self.file_system.executor.session
        ui = session.host.ui if session.host is not None else None

        entries = archive.infolist()
        targets = [entry_target(output_path, info.filename) for info in entries]
        total = sum(max(info.file_size, 1) for info in entries)
        extracted = 0
        activity_id = secrets.randbelow(2 ** 31)
        activity = f"Unzipping to '{output_path}' on '{session.descriptor}'."
        started = time.monotonic()

        logger.info("Extracting %d entries to %s", len(entries), output_path)

        for info, target in zip(entries, targets):
            self._cancel_check(cancel_event)

            percent = int(extracted * 100 / total) if total else 100
            if ui is not None:
                ui.write_progress(activity_id, ProgressRecord(
                    activity_id=activity_id,
                    activity=activity,
                    status_description=info.filename,
                    percent_complete=percent,
                    seconds_remaining=self._seconds_remaining(started, percent),
                ))

            if info.filename.endswith(("/", "\\")) and info.file_size == 0:
                logger.debug("Creating directory %s", target)
                self.file_system.ensure_directory(target)
                extracted += 1
            else:
                logger.debug("Extracting %s (%d bytes)", target, info.file_size)
                self.file_system.put_file(target, archive.read(info), True)
                extracted += max(info.file_size, 1)

        if ui is not None:
            ui.write_progress(activity_id, ProgressRecord(
                activity_id=activity_id,
                activity=activity,
                status_description="Completed",
                percent_complete=100,
                seconds_remaining=0,
                record_type=ProgressRecordType.COMPLETED,
            ))
        logger.info("Extraction to %s completed", output_path)

    @staticmethod
    def _seconds_remaining(started: float, percent: int) -> int:
        if percent <= 0:
            return -1
        elapsed = time.monotonic() - started
        return int(elapsed / percent * (100 - percent))

    async def extract_to_async(
        self,
        archive: zipfile.ZipFile,
        output_path: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        await asyncio.to_thread(self.extract_to, archive, output_path, cancel_event)
