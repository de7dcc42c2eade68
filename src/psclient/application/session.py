"""
PowerShell session.

A PSSession owns at most one open execution channel and one host binding.
Opening always starts from a clean state; closing never raises.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from typing import Callable, Iterator, Optional

from psclient.domain.connection import ConnectionDescriptor
from psclient.domain.errors import (
    InvalidConnectionError,
    OperationCancelledError,
    TransportError,
)
from psclient.domain.host import Host, HostCallbacks
from psclient.infrastructure.channels import ExecutionChannel, create_channel
from psclient.infrastructure.settings import ClientSettings

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[ConnectionDescriptor, Host, ClientSettings], ExecutionChannel]


class PSSession:
    """
    Session lifecycle: created empty, open() binds a channel and a host,
    close() releases both.

    Example:
        with PSSession() as session:
            session.open(ConnectionDescriptor.create_local())
            ...
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        channel_factory: Optional[ChannelFactory] = None,
        callbacks: Optional[HostCallbacks] = None,
    ):
        self.settings = settings or ClientSettings()
        self._channel_factory = channel_factory or create_channel
        self._callbacks = callbacks
        self._descriptor: Optional[ConnectionDescriptor] = None
        self._host: Optional[Host] = None
        self._channel: Optional[ExecutionChannel] = None
        self.lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._channel is not None and self._channel.is_open

    @property
    def descriptor(self) -> Optional[ConnectionDescriptor]:
        """Copy of the descriptor the session was opened with."""
        return self._descriptor.model_copy() if self._descriptor is not None else None

    @property
    def host(self) -> Optional[Host]:
        return self._host

    @property
    def channel(self) -> Optional[ExecutionChannel]:
        return self._channel

    def open(self, descriptor: ConnectionDescriptor) -> None:
        """
        Open the session.

        Any previous state is closed first. On failure the session is closed
        again before the error propagates.

        Raises:
            InvalidConnectionError: If descriptor is None
            TransportError: If the channel cannot be opened
        """
        if descriptor is None:
            raise InvalidConnectionError("A connection descriptor is required")

        self.close()
        try:
            self._host = Host(self._callbacks)
            self._channel = self._channel_factory(descriptor, self._host, self.settings)
            self._channel.open()
            self._descriptor = descriptor.model_copy()
            logger.info("Session opened: %s", descriptor)
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        """Release the channel and host. Safe to call any number of times."""
        channel = self._channel
        if channel is not None:
            try:
                channel.close()
                logger.debug("Session closed: %s", self._descriptor)
            except Exception:  # pylint: disable=broad-except
                logger.debug("Error while closing channel", exc_info=True)

        self._channel = None
        self._host = None
        self._descriptor = None

    def set_callbacks(self, callbacks: HostCallbacks) -> None:
        """Replace the host callbacks; applies to the current and future hosts."""
        self._callbacks = callbacks
        if self._host is not None:
            self._host.ui.callbacks = callbacks

    async def open_async(self, descriptor: ConnectionDescriptor) -> None:
        await asyncio.to_thread(self.open, descriptor)

    async def close_async(self) -> None:
        await asyncio.to_thread(self.close)

    @classmethod
    def test_connection(
        cls,
        descriptor: ConnectionDescriptor,
        settings: Optional[ClientSettings] = None,
        channel_factory: Optional[ChannelFactory] = None,
    ) -> bool:
        """
        Open and immediately close a throwaway session.

        Returns:
            True if the session could be opened

        Raises:
            InvalidConnectionError: If descriptor is None
        """
        if descriptor is None:
            raise InvalidConnectionError("A connection descriptor is required")

        session = cls(settings, channel_factory)
        try:
            session.open(descriptor)
            return True
        except (TransportError, OperationCancelledError) as e:
            logger.info("Connection test failed for %s: %s", descriptor, e)
            return False
        finally:
            session.close()

    @classmethod
    async def test_connection_async(
        cls,
        descriptor: ConnectionDescriptor,
        settings: Optional[ClientSettings] = None,
        channel_factory: Optional[ChannelFactory] = None,
    ) -> bool:
        """Like test_connection, but gives up after the descriptor's connect timeout."""
        if descriptor is None:
            raise InvalidConnectionError("A connection descriptor is required")
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(cls.test_connection, descriptor, settings, channel_factory),
                timeout=descriptor.connect_timeout,
            )
        except asyncio.TimeoutError:
            logger.info(
                "Connection test timed out for %s after %ss", descriptor, descriptor.connect_timeout
            )
            return False

    def __enter__(self) -> PSSession:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


@contextlib.contextmanager
def open_session(
    descriptor: ConnectionDescriptor,
    settings: Optional[ClientSettings] = None,
    channel_factory: Optional[ChannelFactory] = None,
    callbacks: Optional[HostCallbacks] = None,
) -> Iterator[PSSession]:
    """Yield an open session and always close it afterwards."""
    session = PSSession(settings, channel_factory, callbacks)
    try:
        session.open(descriptor)
        yield session
    finally:
        session.close()
