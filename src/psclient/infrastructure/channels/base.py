"""
Execution channel abstractions.

A channel is the open connection to a PowerShell engine (a local process
factory or a remote WinRM shell). It creates pipelines; each pipeline runs
one invocation and exposes two streams, output and error, that are filled
by background readers and drained without blocking by the executor.
"""

from __future__ import annotations

import logging
import queue
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Sequence

from psclient.domain.command import Command
from psclient.domain.connection import ConnectionDescriptor
from psclient.domain.errors import RemoteExecutionError
from psclient.domain.host import Host
from psclient.infrastructure import framing
from psclient.infrastructure.framing import RecordParser, StderrDecoder
from psclient.infrastructure.settings import ClientSettings

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


class PipelineStream:
    """
    Thread-safe item stream filled by a writer and drained by a reader.

    ``is_open`` is True until the writer completes it. ``end_of_pipeline``
    is True once it is complete and every item has been read.
    """

    def __init__(self, name: str):
        self.name = name
        self._queue: queue.Queue = queue.Queue()
        self._open = True
        self._discarded = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def end_of_pipeline(self) -> bool:
        return not self._open and self._queue.empty()

    @property
    def count(self) -> int:
        return self._queue.qsize()

    def write(self, item: Any) -> None:
        if self._discarded:
            return
        self._queue.put(item)

    def complete(self) -> None:
        self._open = False

    def non_blocking_read(self, max_count: Optional[int] = None) -> list:
        """Return every item available right now (at most max_count)."""
        items = []
        while max_count is None or len(items) < max_count:
            try:
                items.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return items

    def close(self) -> None:
        """Stop accepting items and discard anything unread."""
        self._discarded = True
        self._open = False
        self.non_blocking_read()


class Pipeline(ABC):
    """One invocation of a chain of commands."""

    def __init__(self, commands: Sequence[Command], host: Host, settings: ClientSettings):
        self.commands = list(commands)
        self.host = host
        self.settings = settings
        self.output = PipelineStream("output")
        self.error = PipelineStream("error")
        self.failure_reason: Optional[BaseException] = None
        self.state = PipelineState.NOT_STARTED
        self.script = framing.build_invocation_script(
            self.commands, settings.serialization_depth
        )
        self._input_closed = False
        self._parser = RecordParser()
        self._stderr = StderrDecoder()
        self._finished = threading.Event()

    @property
    def input_closed(self) -> bool:
        return self._input_closed

    def close_input(self) -> None:
        """
        Signal end of input.

        The engine reads its input to the end before it runs anything, so a
        pipeline whose input is never closed waits forever.
        """
        if self._input_closed:
            return
        self._input_closed = True
        if self.state == PipelineState.RUNNING:
            self._send_end_of_input()

    def invoke_async(self) -> None:
        """Start the invocation; results arrive on the output and error streams."""
        if self.state != PipelineState.NOT_STARTED:
            raise RuntimeError("A pipeline can only be invoked once")
        self.state = PipelineState.RUNNING
        logger.debug("Starting pipeline: %s", framing.build_pipeline_text(self.commands)[:200])
        try:
            self._start()
        except Exception as e:
            self._finish(None, failure=e)
            raise

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    def stop(self) -> None:
        if self.state == PipelineState.RUNNING:
            self.state = PipelineState.STOPPED
            self._stop()

    def dispose(self) -> None:
        try:
            self.stop()
        finally:
            self.output.close()
            self.error.close()

    @abstractmethod
    def _start(self) -> None:
        """Launch the engine, send the script and start the readers."""

    @abstractmethod
    def _send_end_of_input(self) -> None:
        """Close the engine's input after the invocation has started."""

    @abstractmethod
    def _stop(self) -> None:
        """Abort the running invocation."""

    def _handle_output_line(self, line: str) -> None:
        parsed = self._parser.parse_line(line)
        ui = self.host.ui
        try:
            if parsed.tag == framing.DATA:
                self.output.write(self._parser.to_remote_object(parsed.payload))
            elif parsed.tag == framing.ERROR:
                self.error.write(self._parser.to_error_record(parsed.payload))
            elif parsed.tag == framing.FAILURE:
                record = self._parser.to_error_record(parsed.payload)
                self.failure_reason = RemoteExecutionError(record.message, record)
            elif parsed.tag == framing.WARNING:
                ui.write_warning_line(self._parser.to_message(parsed.payload))
            elif parsed.tag == framing.VERBOSE:
                ui.write_verbose_line(self._parser.to_message(parsed.payload))
            elif parsed.tag == framing.DEBUG:
                ui.write_debug_line(self._parser.to_message(parsed.payload))
            elif parsed.tag == framing.INFORMATION:
                ui.write_line(self._parser.to_message(parsed.payload))
            else:
                ui.write_line(parsed.payload)
        except Exception:  # pylint: disable=broad-except
            # a failing host callback must not kill the reader thread
            logger.exception("Host callback failed while handling pipeline output")

    def _handle_error_line(self, line: str) -> None:
        for record in self._stderr.feed(line):
            self.error.write(record)

    def _finish(self, exit_code: Optional[int], failure: Optional[BaseException] = None) -> None:
        """Record the outcome and complete both streams."""
        if failure is not None and self.failure_reason is None:
            self.failure_reason = failure
        if exit_code and self.failure_reason is None and self.state != PipelineState.STOPPED:
            self.failure_reason = RemoteExecutionError(
                f"PowerShell exited with code {exit_code}"
            )

        if self.state == PipelineState.RUNNING:
            self.state = (
                PipelineState.FAILED if self.failure_reason is not None
                else PipelineState.COMPLETED
            )
        if exit_code is not None:
            self.host.set_should_exit(exit_code)
        logger.debug("Pipeline finished: state=%s exit_code=%s", self.state.value, exit_code)

        self.output.complete()
        self.error.complete()
        self._finished.set()


class ExecutionChannel(ABC):
    """An open connection to a PowerShell engine."""

    def __init__(self, descriptor: ConnectionDescriptor, host: Host, settings: ClientSettings):
        self.descriptor = descriptor
        self.host = host
        self.settings = settings
        self._pipelines: set[Pipeline] = set()
        self._lock = threading.Lock()

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while pipelines can be created."""

    @abstractmethod
    def open(self) -> None:
        """Open the connection. Raises TransportError on failure."""

    @abstractmethod
    def _new_pipeline(self, commands: Sequence[Command]) -> Pipeline:
        """Create a transport specific pipeline."""

    def create_pipeline(self, commands: Sequence[Command]) -> Pipeline:
        if not self.is_open:
            raise RuntimeError(f"Channel to {self.descriptor} is not open")
        pipeline = self._new_pipeline(commands)
        with self._lock:
            self._pipelines = {p for p in self._pipelines if p.state in
                               (PipelineState.NOT_STARTED, PipelineState.RUNNING)}
            self._pipelines.add(pipeline)
        return pipeline

    def close(self) -> None:
        """Stop running pipelines and release the connection."""
        with self._lock:
            pipelines, self._pipelines = self._pipelines, set()
        for pipeline in pipelines:
            try:
                pipeline.dispose()
            except Exception:  # pylint: disable=broad-except
                logger.debug("Failed to dispose pipeline", exc_info=True)
        self._close()

    @abstractmethod
    def _close(self) -> None:
        """Release transport resources."""
