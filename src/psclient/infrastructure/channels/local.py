"""
Local PowerShell channel.

Every pipeline runs in its own PowerShell process. The script goes in on
standard input; standard output and standard error are read line by line
on background threads.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
import threading
from typing import IO, Optional, Sequence

from psclient.domain.command import Command
from psclient.domain.errors import TransportError
from psclient.infrastructure import framing
from psclient.infrastructure.channels.base import ExecutionChannel, Pipeline
from psclient.infrastructure.framing import LineBuffer

logger = logging.getLogger(__name__)

EXECUTABLE_CANDIDATES = ("pwsh", "powershell", "powershell.exe")

_READ_SIZE = 64 * 1024


def find_powershell(preferred: Optional[str] = None) -> Optional[str]:
    """Locate a PowerShell executable, honoring an explicit choice first."""
    if preferred:
        return shutil.which(preferred) or preferred
    for candidate in EXECUTABLE_CANDIDATES:
        found = shutil.which(candidate)
        if found:
            return found
    return None


class LocalPipeline(Pipeline):
    """A pipeline executed by a local PowerShell process."""

    def __init__(self, executable: str, commands: Sequence[Command], host, settings):
        super().__init__(commands, host, settings)
        self.executable = executable
        self._process: Optional[subprocess.Popen] = None
        self._stderr_thread: Optional[threading.Thread] = None
        self._stdin_lock = threading.Lock()

    def _build_command_line(self) -> list[str]:
        return [self.executable, *framing.build_arguments()]

    def _start(self) -> None:
        cmd = self._build_command_line()
        creationflags = getattr(subprocess, "CREATE_NO_WINDOW", 0) if sys.platform == "win32" else 0
        try:
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                creationflags=creationflags,
            )
        except OSError as e:
            raise TransportError(f"Failed to start {self.executable}: {e}") from e

        self._stderr_thread = threading.Thread(
            target=self._read_stream,
            args=(self._process.stderr, self._handle_error_line),
            name="psclient-stderr",
            daemon=True,
        )
        self._stderr_thread.start()
        threading.Thread(target=self._read_stdout, name="psclient-stdout", daemon=True).start()

        self._write_input(framing.encode_script_input(self.script).encode("ascii"))
        if self._input_closed:
            self._send_end_of_input()

    def _write_input(self, data: bytes) -> None:
        with self._stdin_lock:
            try:
                self._process.stdin.write(data)
                self._process.stdin.flush()
            except (OSError, ValueError):
                # the process already exited; its exit code and stderr tell why
                logger.debug("Could not write pipeline input", exc_info=True)

    def _send_end_of_input(self) -> None:
        with self._stdin_lock:
            try:
                self._process.stdin.close()
            except OSError:
                logger.debug("Could not close pipeline input", exc_info=True)

    def _read_stream(self, stream: IO[bytes], handler) -> None:
        buffer = LineBuffer()
        for chunk in iter(lambda: stream.read1(_READ_SIZE), b""):
            for line in buffer.feed(chunk):
                handler(line)
        for line in buffer.flush():
            handler(line)

    def _read_stdout(self) -> None:
        failure = None
        exit_code = None
        try:
            self._read_stream(self._process.stdout, self._handle_output_line)
            self._stderr_thread.join()
            exit_code = self._process.wait()
        except Exception as e:  # pylint: disable=broad-except
            logger.debug("Local pipeline reader failed", exc_info=True)
            failure = e
        finally:
            self._close_pipes()
            self._finish(exit_code, failure=failure)

    def _close_pipes(self) -> None:
        self._send_end_of_input()
        self._process.stdout.close()
        if not self._stderr_thread.is_alive():
            self._process.stderr.close()

    def _stop(self) -> None:
        if self._process is not None and self._process.poll() is None:
            logger.debug("Killing PowerShell process %s", self._process.pid)
            self._process.kill()


class LocalChannel(ExecutionChannel):
    """Runs pipelines with a PowerShell executable on this machine."""

    def __init__(self, descriptor, host, settings):
        super().__init__(descriptor, host, settings)
        self.executable: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.executable is not None

    def open(self) -> None:
        executable = find_powershell(self.settings.powershell_executable)
        if not executable:
            raise TransportError(
                "PowerShell executable not found (tried: %s)" % ", ".join(EXECUTABLE_CANDIDATES)
            )
        self.executable = executable
        logger.info("Local PowerShell channel opened: %s", executable)

    def _new_pipeline(self, commands: Sequence[Command]) -> Pipeline:
        return LocalPipeline(self.executable, commands, self.host, self.settings)

    def _close(self) -> None:
        self.executable = None
