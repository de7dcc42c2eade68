"""
Remote PowerShell channel over WinRM (pywinrm).

One remote shell is opened per channel; each pipeline is a command in that
shell running powershell.exe. Output is polled on a background thread.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence

from winrm.exceptions import WinRMOperationTimeoutError
from winrm.protocol import Protocol

from psclient.domain.command import Command
from psclient.domain.connection import AuthMethod
from psclient.domain.errors import TransportError
from psclient.infrastructure import framing
from psclient.infrastructure.channels.base import ExecutionChannel, Pipeline, PipelineState
from psclient.infrastructure.framing import LineBuffer

logger = logging.getLogger(__name__)

REMOTE_EXECUTABLE = "powershell.exe"
UTF8_CODEPAGE = 65001

# pywinrm has no "negotiate" transport; its ntlm transport negotiates via SPNEGO
_TRANSPORTS = {
    AuthMethod.NEGOTIATE: "ntlm",
    AuthMethod.KERBEROS: "kerberos",
    AuthMethod.NTLM: "ntlm",
    AuthMethod.BASIC: "basic",
    AuthMethod.CREDSSP: "credssp",
}


class WinRMPipeline(Pipeline):
    """A pipeline executed as one command in a remote WinRM shell."""

    def __init__(self, protocol: Protocol, shell_id: str, commands: Sequence[Command], host, settings):
        super().__init__(commands, host, settings)
        self._protocol = protocol
        self._shell_id = shell_id
        self._command_id: Optional[str] = None
        self._stopped = threading.Event()
        self._input_lock = threading.Lock()
        self._end_sent = False

    def _start(self) -> None:
        try:
            self._command_id = self._protocol.run_command(
                self._shell_id,
                REMOTE_EXECUTABLE,
                framing.build_arguments(),
                console_mode_stdin=False,
            )
        except Exception as e:
            raise TransportError(f"Failed to start remote PowerShell: {e}") from e

        threading.Thread(target=self._poll_output, name="psclient-winrm", daemon=True).start()

        data = framing.encode_script_input(self.script)
        piece_size = self.settings.input_piece_size
        pieces = [data[i:i + piece_size] for i in range(0, len(data), piece_size)]
        with self._input_lock:
            for index, piece in enumerate(pieces):
                last = index == len(pieces) - 1
                self._send_input(piece, end=last and self._input_closed)

    def _send_input(self, text: str, end: bool) -> None:
        self._protocol.send_command_input(self._shell_id, self._command_id, text, end=end)
        if end:
            self._end_sent = True

    def _send_end_of_input(self) -> None:
        with self._input_lock:
            if not self._end_sent and self._command_id is not None:
                self._send_input("", end=True)

    def _poll_output(self) -> None:
        stdout_buffer = LineBuffer()
        stderr_buffer = LineBuffer()
        exit_code = None
        failure = None
        try:
            done = False
            while not done and not self._stopped.is_set():
                try:
                    stdout, stderr, exit_code, done = self._protocol.get_command_output_raw(
                        self._shell_id, self._command_id
                    )
                except WinRMOperationTimeoutError:
                    continue
                for line in stderr_buffer.feed(stderr):
                    self._handle_error_line(line)
                for line in stdout_buffer.feed(stdout):
                    self._handle_output_line(line)
            for line in stderr_buffer.flush():
                self._handle_error_line(line)
            for line in stdout_buffer.flush():
                self._handle_output_line(line)
        except Exception as e:  # pylint: disable=broad-except
            if not self._stopped.is_set():
                logger.debug("WinRM output polling failed", exc_info=True)
                failure = TransportError(f"Lost connection while reading output: {e}")
        finally:
            self._cleanup()
            self._finish(exit_code if exit_code and exit_code > 0 else None, failure=failure)

    def _cleanup(self) -> None:
        if self._command_id is None:
            return
        command_id, self._command_id = self._command_id, None
        try:
            self._protocol.cleanup_command(self._shell_id, command_id)
        except Exception:  # pylint: disable=broad-except
            logger.debug("cleanup_command failed for %s", command_id, exc_info=True)

    def _stop(self) -> None:
        self._stopped.set()
        self._cleanup()


class WinRMChannel(ExecutionChannel):
    """Runs pipelines on a remote machine through a WinRM shell."""

    def __init__(self, descriptor, host, settings):
        super().__init__(descriptor, host, settings)
        self._protocol: Optional[Protocol] = None
        self._shell_id: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self._shell_id is not None

    def _create_protocol(self) -> Protocol:
        descriptor = self.descriptor
        credential = descriptor.credential
        operation_timeout = int(descriptor.operation_timeout)
        return Protocol(
            endpoint=descriptor.endpoint,
            transport=_TRANSPORTS[descriptor.auth_method],
            username=credential.username if credential else None,
            password=credential.get_password() if credential else None,
            server_cert_validation="validate" if descriptor.require_valid_certificate else "ignore",
            operation_timeout_sec=operation_timeout,
            read_timeout_sec=operation_timeout + 10,
        )

    def open(self) -> None:
        logger.debug(
            "Opening WinRM shell: %s (%s)", self.descriptor.endpoint, self.descriptor.auth_method.value
        )
        try:
            self._protocol = self._create_protocol()
            self._shell_id = self._protocol.open_shell(codepage=UTF8_CODEPAGE, noprofile=True)
        except Exception as e:
            self._protocol = None
            raise TransportError(f"Failed to connect to {self.descriptor}: {e}") from e
        logger.info("WinRM shell opened on %s", self.descriptor)

    def _new_pipeline(self, commands: Sequence[Command]) -> Pipeline:
        return WinRMPipeline(self._protocol, self._shell_id, commands, self.host, self.settings)

    def _close(self) -> None:
        shell_id, self._shell_id = self._shell_id, None
        protocol, self._protocol = self._protocol, None
        if protocol is None or shell_id is None:
            return
        try:
            protocol.close_shell(shell_id)
        except Exception:  # pylint: disable=broad-except
            logger.debug("close_shell failed for %s", shell_id, exc_info=True)
