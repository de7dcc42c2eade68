"""
Pipeline executor.

Runs a chain of commands on an open session and drains the output and
error streams until the pipeline completes. Data items are coerced to the
requested type; items that cannot be coerced are written to the host.
Errors are collected and raised once the pipeline is torn down.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Iterable, Mapping, Optional, Sequence

from psclient.application.coercion import coerce
from psclient.application.session import PSSession
from psclient.domain.command import Command
from psclient.domain.errors import (
    AggregateExecutionError,
    EmptyRequestError,
    NotConnectedError,
    RemoteExecutionError,
    UnspecifiedExecutionError,
    get_single_exception,
)
from psclient.domain.records import ErrorRecord

logger = logging.getLogger(__name__)


def raise_for_causes(causes: Sequence[BaseException]) -> None:
    """
    Raise the failure described by a list of causes.

    No causes raises UnspecifiedExecutionError, one cause is raised as-is
    and several are raised together as an AggregateExecutionError.
    """
    if not causes:
        raise UnspecifiedExecutionError()
    if len(causes) == 1:
        raise causes[0]
    raise AggregateExecutionError("PowerShell execution failed.", causes)


def _to_cause(record: Any) -> BaseException:
    if isinstance(record, ErrorRecord) and record.message:
        return RemoteExecutionError(record.message, record)
    return get_single_exception(str(record))


class PipelineExecutor:
    """Invokes pipelines against a PSSession."""

    def __init__(self, session: PSSession, polling_delay: Optional[float] = None):
        self.session = session
        self.polling_delay = session.settings.polling_delay if polling_delay is None else polling_delay

    def invoke(self, commands: Iterable[Optional[Command]], result_type: Any = object) -> list:
        """
        Run the commands as one pipeline.

        Args:
            commands: Commands chained in order; None entries are ignored
            result_type: Type every data item is coerced to

        Returns:
            Coerced data items in the order they were produced

        Raises:
            NotConnectedError: If the session is not open
            EmptyRequestError: If no command was given
            ExecutionError: If the pipeline reported errors
        """
        channel = self.session.channel
        if channel is None or not channel.is_open:
            raise NotConnectedError("The session is not open")

        commands = [c for c in commands if c is not None]
        if not commands:
            raise EmptyRequestError("At least one command is required")

        results: list = []
        errors: list = []
        failure_reason = None

        with self.session.lock:
            # the session may have been closed or reopened while waiting
            channel = self.session.channel
            if channel is None or not channel.is_open:
                raise NotConnectedError("The session is not open")
            host = self.session.host
            pipeline = channel.create_pipeline(commands)
            try:
                pipeline.close_input()
                pipeline.invoke_async()
                logger.debug("Pipeline started with %d command(s)", len(commands))

                output, error = pipeline.output, pipeline.error
                while output.is_open or not output.end_of_pipeline or not error.end_of_pipeline:
                    read_any = False

                    for record in error.non_blocking_read():
                        read_any = True
                        errors.append(record)
                        host.ui.write_error_line(str(record))

                    for item in output.non_blocking_read():
                        read_any = True
                        value, ok = coerce(item, result_type)
                        if ok:
                            results.append(value)
                        else:
                            host.ui.write_line(str(item) if item is not None else "")

                    if errors or pipeline.failure_reason is not None:
                        break

                    if not read_any:
                        time.sleep(self.polling_delay)

                failure_reason = pipeline.failure_reason
            finally:
                pipeline.output.close()
                pipeline.error.close()
                pipeline.dispose()

        if errors or failure_reason is not None:
            causes = [_to_cause(e) for e in errors]
            if failure_reason is not None:
                causes.insert(0, failure_reason)
            logger.debug("Pipeline failed with %d cause(s)", len(causes))
            raise_for_causes(causes)

        logger.debug("Pipeline returned %d item(s)", len(results))
        return results

    def invoke_command(
        self,
        name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        switches: Optional[Iterable[str]] = None,
        result_type: Any = object,
    ) -> list:
        return self.invoke([Command.from_mapping(name, parameters, switches)], result_type)

    def invoke_script(self, text: str, result_type: Any = object) -> list:
        return self.invoke([Command.script(text)], result_type)

    async def invoke_async(self, commands: Iterable[Optional[Command]], result_type: Any = object) -> list:
        return await asyncio.to_thread(self.invoke, list(commands), result_type)

    async def invoke_command_async(
        self,
        name: str,
        parameters: Optional[Mapping[str, Any]] = None,
        switches: Optional[Iterable[str]] = None,
        result_type: Any = object,
    ) -> list:
        return await asyncio.to_thread(self.invoke_command, name, parameters, switches, result_type)

    async def invoke_script_async(self, text: str, result_type: Any = object) -> list:
        return await asyncio.to_thread(self.invoke_script, text, result_type)
