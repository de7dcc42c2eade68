"""
PSClient facade.

Bundles a session with the executor, file system and zip extractor built
on it, so callers deal with one object.

Example:
    with PSClient(ConnectionDescriptor.create_local()) as client:
        print(client.executor.invoke_script("5 * 24", int))
"""

from __future__ import annotations

import logging
from typing import Optional

from psclient.application.executor import PipelineExecutor
from psclient.application.file_system import RemoteFileSystem
from psclient.application.session import ChannelFactory, PSSession
from psclient.application.zip_extractor import ZipExtractor
from psclient.domain.connection import ConnectionDescriptor
from psclient.domain.host import HostCallbacks
from psclient.infrastructure.settings import ClientSettings

logger = logging.getLogger(__name__)


class PSClient:
    """Session plus the services that operate on it."""

    def __init__(
        self,
        descriptor: Optional[ConnectionDescriptor] = None,
        settings: Optional[ClientSettings] = None,
        channel_factory: Optional[ChannelFactory] = None,
        callbacks: Optional[HostCallbacks] = None,
    ):
        self.session = PSSession(settings, channel_factory, callbacks)
        self.executor = PipelineExecutor(self.session)
        self.file_system = RemoteFileSystem(self.executor)
        self.zip_extractor = ZipExtractor(self.file_system)
        if descriptor is not None:
            self.open(descriptor)

    @property
    def is_open(self) -> bool:
        return self.session.is_open

    def open(self, descriptor: ConnectionDescriptor) -> None:
        self.session.open(descriptor)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> PSClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
